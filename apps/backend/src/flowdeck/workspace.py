"""Resolution of per-team workspace directories."""

from __future__ import annotations

from pathlib import Path, PurePosixPath

from .config import Settings
from .errors import InvalidPathError
from .workflow.ids import validate_team_id


class TeamWorkspace:
    """Maps a team id to its workspace directory. Never touches the filesystem."""

    def __init__(self, root: Path, prefix: str = "workspace-"):
        self.root = Path(root)
        self.prefix = prefix

    @classmethod
    def from_settings(cls, settings: Settings) -> "TeamWorkspace":
        return cls(Path(settings.workspace_root).expanduser(), settings.workspace_prefix)

    def team_dir(self, team_id: str) -> Path:
        team = validate_team_id(team_id)
        return self.root / f"{self.prefix}{team}"

    def resolve_relative(self, team_id: str, rel_path: str) -> Path:
        """Join a relative file name inside the team workspace, rejecting traversal."""
        name = str(rel_path or "").replace("\\", "/").strip()
        if not name or name.startswith("/"):
            raise InvalidPathError(f"Invalid file name: {rel_path!r}")
        parts = PurePosixPath(name).parts
        if any(part == ".." for part in parts):
            raise InvalidPathError(f"Invalid file name: {rel_path!r}")
        return self.team_dir(team_id).joinpath(*parts)
