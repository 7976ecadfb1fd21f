from __future__ import annotations

from typing import Iterable, Optional, Sequence

from .model import Worker
from .repository import WorkerRepository


class InMemoryWorkerRepository(WorkerRepository):
    def __init__(self, workers: Iterable[Worker] = ()):
        self._workers: dict[int, Worker] = {w.worker_id: w for w in workers}

    def add(self, worker: Worker) -> None:
        self._workers[worker.worker_id] = worker

    def get_by_id(self, worker_id: int) -> Optional[Worker]:
        return self._workers.get(int(worker_id))

    def list_all(self) -> Sequence[Worker]:
        return sorted(self._workers.values(), key=lambda w: (w.name, w.worker_id))
