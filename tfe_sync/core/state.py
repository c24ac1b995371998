"""Local record persistence for managed workspaces."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)


class VCSRepoState(BaseModel):
    """Recorded VCS repository block."""

    identifier: str
    branch: str = ""
    ingress_submodules: bool = False
    oauth_token_id: str = ""


class WorkspaceState(BaseModel):
    """Local record of a managed workspace.

    ``id`` is the packed ``<organization>/<name>`` identifier. The remaining
    attributes are the snapshot observed on the last successful read and are
    what update-time change detection compares against.
    """

    id: str
    external_id: str = ""
    name: str = ""
    organization: str = ""
    auto_apply: bool = False
    file_triggers_enabled: bool = True
    operations: bool = True
    queue_all_runs: bool = True
    ssh_key_id: str = ""
    terraform_version: Optional[str] = None
    trigger_prefixes: List[str] = Field(default_factory=list)
    working_directory: str = ""
    vcs_repo: Optional[VCSRepoState] = None
    refreshed_at: Optional[datetime] = None


class StateFile(BaseModel):
    """On-disk layout of the state store."""

    version: int = 1
    records: Dict[str, WorkspaceState] = Field(default_factory=dict)


class StateManager:
    """Stores workspace records in a JSON file, keyed by address."""

    STATE_FILENAME = "workspaces.json"

    def __init__(self, state_dir: Path = Path("./state")) -> None:
        """Initialize state manager.

        Args:
            state_dir: Directory to store the state file
        """
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self._state: Optional[StateFile] = None
        self._logger = logger.bind(state_dir=str(self.state_dir))

    @property
    def state_file(self) -> Path:
        return self.state_dir / self.STATE_FILENAME

    def load(self) -> StateFile:
        """Load the state file, starting empty if it does not exist yet."""
        if self._state is not None:
            return self._state

        if not self.state_file.exists():
            self._state = StateFile()
            return self._state

        with open(self.state_file, 'r', encoding='utf-8') as f:
            data = json.load(f)

        self._state = StateFile.model_validate(data)
        self._logger.info("Loaded workspace state", records=len(self._state.records))
        return self._state

    def save(self) -> None:
        """Write the state file, keeping the previous version as a backup."""
        state = self.load()

        if self.state_file.exists():
            backup_file = self.state_file.with_suffix('.json.backup')
            self.state_file.replace(backup_file)

        with open(self.state_file, 'w', encoding='utf-8') as f:
            json.dump(state.model_dump(mode='json'), f, indent=2)

        self._logger.debug("Saved workspace state", records=len(state.records))

    def get(self, address: str) -> Optional[WorkspaceState]:
        return self.load().records.get(address)

    def addresses(self) -> List[str]:
        return sorted(self.load().records)

    def put(self, address: str, record: WorkspaceState) -> None:
        """Store a record and persist the state file."""
        record = record.model_copy(update={"refreshed_at": datetime.now(timezone.utc)})
        self.load().records[address] = record
        self.save()
        self._logger.debug("Stored workspace record", address=address, id=record.id)

    def remove(self, address: str) -> bool:
        """Drop a record. Returns True if one was removed."""
        removed = self.load().records.pop(address, None) is not None
        if removed:
            self.save()
            self._logger.info("Removed workspace record", address=address)
        return removed
