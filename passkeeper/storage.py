"""In-memory blind store.

Keeps records per owner and per kind, exactly as received. Records are
copied on the way in and on the way out so callers cannot mutate what is
stored.
"""
import itertools
import logging
import threading

from .identity import OwnerIdentity
from .records import VaultRecord, record_type

logger = logging.getLogger("passkeeper.storage")


class InMemoryBlindStore:
    """Dict-backed ``BlindStore``; uids are assigned from a single counter."""

    def __init__(self):
        self._rows: dict[tuple[str, str], dict[int, VaultRecord]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _table(self, owner: OwnerIdentity, kind: str) -> dict[int, VaultRecord]:
        record_type(kind)
        return self._rows.setdefault((owner.owner_id, kind), {})

    def put(self, owner: OwnerIdentity, record: VaultRecord) -> int:
        with self._lock:
            uid = next(self._ids)
            self._table(owner, record.kind)[uid] = record.model_copy(
                update={"uid": uid, "owner_id": owner.owner_id},
            )
        logger.debug("Stored %s uid=%s for owner=%s", record.kind, uid, owner)
        return uid

    def get(self, owner: OwnerIdentity, kind: str) -> list[VaultRecord]:
        with self._lock:
            table = self._table(owner, kind)
            return [table[uid].model_copy() for uid in sorted(table)]

    def update(self, owner: OwnerIdentity, record: VaultRecord) -> None:
        with self._lock:
            table = self._table(owner, record.kind)
            if record.uid not in table:
                raise KeyError(f"No {record.kind} record uid={record.uid}")
            table[record.uid] = record.model_copy(
                update={"owner_id": owner.owner_id},
            )
        logger.debug("Updated %s uid=%s for owner=%s", record.kind, record.uid, owner)

    def delete(self, owner: OwnerIdentity, kind: str, uid: int) -> None:
        with self._lock:
            table = self._table(owner, kind)
            if uid not in table:
                raise KeyError(f"No {kind} record uid={uid}")
            del table[uid]
        logger.debug("Deleted %s uid=%s for owner=%s", kind, uid, owner)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(table) for table in self._rows.values())
