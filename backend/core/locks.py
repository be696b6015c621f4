from __future__ import annotations

import logging
import threading
import uuid
from contextlib import ExitStack, contextmanager
from typing import Iterable, Iterator

from sqlalchemy import text
from sqlalchemy.orm import Session


logger = logging.getLogger(__name__)


_registry_lock = threading.Lock()
_term_locks: dict[tuple[str, str], threading.Lock] = {}


def _lock_for(key: tuple[str, str]) -> threading.Lock:
    with _registry_lock:
        lock = _term_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _term_locks[key] = lock
        return lock


@contextmanager
def term_write_lock(db: Session, *, tenant_id: uuid.UUID, term_id: uuid.UUID) -> Iterator[None]:
    """Serialize every write to one term's timetable slots.

    Covers bulk generation and the manual create/update/delete path. Inside one
    process a per-(tenant, term) mutex is held; on PostgreSQL a transaction-scoped
    advisory lock is also taken so other workers queue behind it. The caller
    must commit or roll back before leaving the block: the advisory lock is
    released at transaction end.
    """

    key = (str(tenant_id), str(term_id))
    lock = _lock_for(key)
    with lock:
        if db.get_bind().dialect.name == "postgresql":
            db.execute(
                text("select pg_advisory_xact_lock(hashtext(:k))"),
                {"k": f"timetable_slots:{key[0]}:{key[1]}"},
            )
        logger.debug("Acquired timetable write lock tenant=%s term=%s", key[0], key[1])
        yield


@contextmanager
def term_write_locks(db: Session, *, tenant_id: uuid.UUID, term_ids: Iterable[uuid.UUID]) -> Iterator[None]:
    """Hold ``term_write_lock`` for several terms, taken in a fixed order."""

    with ExitStack() as stack:
        for term_id in sorted(set(term_ids), key=str):
            stack.enter_context(term_write_lock(db, tenant_id=tenant_id, term_id=term_id))
        yield
