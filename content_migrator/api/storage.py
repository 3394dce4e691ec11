"""In-memory storage for migration runs started through the API."""

import threading
from typing import Dict, List, Optional

from ..orchestrator import MigrationOrchestrator


class MigrationStorage:
    """Keeps orchestrators by run id for the lifetime of the process."""

    def __init__(self):
        self._runs: Dict[str, MigrationOrchestrator] = {}
        self._lock = threading.Lock()

    def add(self, orchestrator: MigrationOrchestrator) -> str:
        with self._lock:
            self._runs[orchestrator.run.id] = orchestrator
        return orchestrator.run.id

    def get(self, run_id: str) -> Optional[MigrationOrchestrator]:
        with self._lock:
            return self._runs.get(run_id)

    def list_all(self) -> List[MigrationOrchestrator]:
        with self._lock:
            return sorted(self._runs.values(), key=lambda o: o.run.created_at, reverse=True)

    def clear(self) -> None:
        with self._lock:
            self._runs.clear()


migration_storage = MigrationStorage()
