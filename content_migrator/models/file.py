"""File and folder models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .record import UnitResult

# Metadata forwarded to the target's import endpoint when present
FILE_METADATA_FIELDS = (
    "title",
    "description",
    "filename_disk",
    "filename_download",
    "type",
    "charset",
    "tags",
    "width",
    "height",
    "duration",
    "location",
    "embed",
    "metadata",
    "filesize",
)


@dataclass
class Folder:
    """A file folder; folders nest through ``parent``."""
    id: str
    name: str = ""
    parent: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Folder":
        return cls(id=data["id"], name=data.get("name") or "", parent=data.get("parent"))


@dataclass
class FileAsset:
    """File metadata as listed by ``/files``."""
    id: str
    folder: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.data.get("filename_download") or self.data.get("title") or self.id

    def import_metadata(self, folder: Optional[str], preserve_id: bool = True) -> Dict[str, Any]:
        """
        Metadata sent alongside the asset URL.

        Empty values are dropped, except ``folder`` which is always sent so a
        root-level file stays at the root.
        """
        metadata: Dict[str, Any] = {}
        if preserve_id:
            metadata["id"] = self.id
        for key in FILE_METADATA_FIELDS:
            value = self.data.get(key)
            if value is None or value == "" or value == [] or value == {}:
                continue
            metadata[key] = value
        metadata["folder"] = folder
        return metadata

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileAsset":
        return cls(id=data["id"], folder=data.get("folder"), data=dict(data))


@dataclass
class FileImportResult:
    """Aggregated result of migrating folders and files."""
    folders: List[UnitResult] = field(default_factory=list)
    files: List[UnitResult] = field(default_factory=list)
    folder_mapping: Dict[str, str] = field(default_factory=dict)

    @staticmethod
    def _count(results: List[UnitResult], status: str) -> int:
        return sum(1 for r in results if r.status == status)

    @property
    def message(self) -> str:
        folders = f"Created {self._count(self.folders, 'success')} folders"
        if self._count(self.folders, "skipped"):
            folders += f", {self._count(self.folders, 'skipped')} already existed"
        if self._count(self.folders, "error"):
            folders += f", {self._count(self.folders, 'error')} failed"
        files = (
            f"imported {self._count(self.files, 'success')} files "
            f"({self._count(self.files, 'skipped')} skipped, {self._count(self.files, 'error')} failed)"
        )
        return f"{folders}; {files}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "message": self.message,
            "folders": [f.to_dict() for f in self.folders],
            "files": [f.to_dict() for f in self.files],
            "folder_mapping": self.folder_mapping,
        }
