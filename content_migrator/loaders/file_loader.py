"""File loader: folders first, then file assets imported by URL."""

import logging
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..client import PlatformAPIError, PlatformClient
from ..models.file import FileAsset, FileImportResult, Folder
from ..models.migration import MigrationSession, MigrationStatus
from ..models.record import UnitResult
from .item_loader import NOT_FOUND_STATUSES

logger = logging.getLogger(__name__)


class FileLoader:
    """
    Loader for folders and file assets.

    Supports:
    - Folder trees, parents created before children
    - Selecting folders (their ancestors are added)
    - Files imported from the source asset URL with their metadata
    - Skipping files and folders already present on the target

    The target downloads each asset itself from ``{source_url}/assets/{id}``.
    """

    def __init__(
        self,
        client: PlatformClient,
        source_url: str,
        preserve_ids: bool = True,
        not_found_statuses: Sequence[int] = NOT_FOUND_STATUSES
    ):
        self.client = client
        self.source_url = source_url.rstrip("/")
        self.preserve_ids = preserve_ids
        self.not_found_statuses = tuple(not_found_statuses)

    # Folders

    @staticmethod
    def order_folders(folders: Sequence[Folder], selected_ids: Optional[Sequence[str]] = None) -> List[Folder]:
        """
        Restrict folders to a selection plus ancestors, parents first.

        Folders whose parent chain loops are appended last in source order.
        """
        by_id = {f.id: f for f in folders}
        if selected_ids:
            wanted = set()
            for folder_id in selected_ids:
                current = by_id.get(folder_id)
                while current and current.id not in wanted:
                    wanted.add(current.id)
                    current = by_id.get(current.parent) if current.parent else None
            folders = [f for f in folders if f.id in wanted]

        ids = {f.id for f in folders}
        ordered: List[Folder] = []
        placed = set()
        pending = list(folders)
        while pending:
            ready = [f for f in pending if not f.parent or f.parent not in ids or f.parent in placed]
            if not ready:
                logger.warning(f"Folder parents loop between: {', '.join(f.name or f.id for f in pending)}")
                ready = pending
            for folder in ready:
                ordered.append(folder)
                placed.add(folder.id)
            pending = [f for f in pending if f.id not in placed]
        return ordered

    def migrate_folders(
        self,
        folders: Sequence[Folder],
        selected_ids: Optional[Sequence[str]] = None
    ) -> Tuple[List[UnitResult], Dict[str, str]]:
        """
        Create missing folders on the target.

        Returns:
            Tuple of (per-folder results, source folder id -> target folder id)
        """
        try:
            existing = {f.get("id") for f in self.client.get("/folders", params={"limit": -1}) or []}
        except PlatformAPIError as e:
            logger.warning(f"Could not read /folders from target: {e.message}")
            existing = set()

        mapping: Dict[str, str] = {}
        results = []
        for folder in self.order_folders(folders, selected_ids):
            result = UnitResult(original_id=folder.id, name=folder.name)
            if self.preserve_ids and folder.id in existing:
                mapping[folder.id] = folder.id
                result.new_id = folder.id
                result.status = "skipped"
                result.action = "skipped"
                results.append(result)
                continue

            payload: Dict[str, Any] = {
                "name": folder.name,
                "parent": mapping.get(folder.parent, folder.parent) if folder.parent else None,
            }
            if self.preserve_ids:
                payload["id"] = folder.id
            try:
                response = self.client.post("/folders", payload)
            except PlatformAPIError as e:
                logger.error(f"Failed to create folder {folder.name}: {e.message}")
                result.status = "error"
                result.error = e.message
                results.append(result)
                continue

            new_id = response.get("id") if isinstance(response, dict) else None
            mapping[folder.id] = new_id or folder.id
            result.new_id = mapping[folder.id]
            result.action = "created"
            results.append(result)

        created = sum(1 for r in results if r.action == "created")
        logger.info(f"Created {created} of {len(results)} folders")
        return results, mapping

    # Files

    def _file_exists(self, file_id: str) -> bool:
        try:
            self.client.get(f"/files/{file_id}")
        except PlatformAPIError as e:
            if e.status_code not in self.not_found_statuses:
                logger.warning(f"Could not check file {file_id} on target ({e.message}), importing it")
            return False
        return True

    def import_file(self, file: FileAsset, folder_mapping: Optional[Dict[str, str]] = None) -> UnitResult:
        """Import one file unless it already exists on the target."""
        result = UnitResult(original_id=file.id, name=file.label)

        if self._file_exists(file.id):
            logger.debug(f"File {file.label} already on target")
            result.new_id = file.id
            result.status = "skipped"
            result.action = "skipped"
            return result

        folder = (folder_mapping or {}).get(file.folder, file.folder) if file.folder else None
        payload = {
            "url": f"{self.source_url}/assets/{file.id}",
            "data": file.import_metadata(folder, self.preserve_ids),
        }
        try:
            response = self.client.post("/files/import", payload)
        except PlatformAPIError as e:
            logger.error(f"Failed to import file {file.label}: {e.message}")
            result.status = "error"
            result.error = e.message
            return result

        new_id = response.get("id") if isinstance(response, dict) else None
        if not new_id:
            result.status = "error"
            result.error = "Import succeeded but no file ID returned"
            return result

        result.new_id = new_id
        result.action = "created"
        return result

    def migrate(
        self,
        folders: Sequence[Folder],
        files: Sequence[FileAsset],
        selected_folder_ids: Optional[Sequence[str]] = None,
        session: Optional[MigrationSession] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> FileImportResult:
        """
        Migrate folders, then the files they hold.

        Args:
            folders: Source folders
            files: Source files
            selected_folder_ids: Only these folders and their files; empty means all
            session: Session whose progress map gets a ``files`` entry
            cancel_event: Stops before the next file when set

        Returns:
            FileImportResult
        """
        result = FileImportResult()
        result.folders, result.folder_mapping = self.migrate_folders(folders, selected_folder_ids)

        if selected_folder_ids:
            selected = set(selected_folder_ids)
            files = [f for f in files if f.folder in selected]

        if session:
            session.update_progress("files", total=len(files), status=MigrationStatus.MIGRATING_FILES)

        for file in files:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("File migration cancelled")
                break
            result.files.append(self.import_file(file, result.folder_mapping))
            if session:
                session.update_progress(
                    "files",
                    processed=len(result.files),
                    succeeded=sum(1 for r in result.files if r.status != "error"),
                    failed=sum(1 for r in result.files if r.status == "error"),
                )

        if session:
            failed = any(r.status == "error" for r in result.files)
            session.update_progress(
                "files",
                status=MigrationStatus.COMPLETED_WITH_ERRORS if failed else MigrationStatus.COMPLETED,
            )

        logger.info(result.message)
        return result
