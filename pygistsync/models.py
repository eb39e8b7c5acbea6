"""Data models for Gist API responses."""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class GistFile:
    """One file entry of a gist."""

    filename: str
    content: Optional[str] = None
    size: int = 0
    truncated: bool = False
    raw_url: Optional[str] = None

    @classmethod
    def from_dict(cls, name: str, data: Optional[dict[str, Any]]) -> "GistFile":
        data = data or {}
        return cls(
            filename=data.get("filename") or name,
            content=data.get("content"),
            size=data.get("size") or 0,
            truncated=bool(data.get("truncated", False)),
            raw_url=data.get("raw_url"),
        )


@dataclass
class GistDocument:
    """A gist as returned by ``GET /gists/{id}``.

    The files mapping is keyed by remote key and holds the whole remote
    document set.
    """

    id: str
    public: bool = False
    owner: Optional[str] = None
    """Login of the gist owner (None for anonymous gists)"""

    description: Optional[str] = None
    updated_at: Optional[str] = None
    files: dict[str, GistFile] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GistDocument":
        owner_data = data.get("owner")
        owner: Optional[str] = None
        if isinstance(owner_data, dict) and owner_data.get("login"):
            owner = str(owner_data["login"]).strip()

        files_data = data.get("files") or {}
        files = {
            name: GistFile.from_dict(name, entry)
            for name, entry in files_data.items()
            if entry is not None
        }

        return cls(
            id=str(data.get("id", "")),
            public=bool(data.get("public", False)),
            owner=owner,
            description=data.get("description"),
            updated_at=data.get("updated_at"),
            files=files,
        )

    def file_contents(self) -> dict[str, str]:
        """Map of remote key -> content (missing content becomes "")."""
        return {name: entry.content or "" for name, entry in self.files.items()}
