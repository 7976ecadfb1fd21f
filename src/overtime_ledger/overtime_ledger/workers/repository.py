from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import Worker


class WorkerRepository(Protocol):
    """Read-only view of the external worker store.

    Note (DIP): the ledger depends on this interface, not on a concrete DB.
    """

    def get_by_id(self, worker_id: int) -> Optional[Worker]:
        raise NotImplementedError

    def list_all(self) -> Sequence[Worker]:
        raise NotImplementedError
