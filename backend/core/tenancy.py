from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator


# School (tenant) the current unit of work writes for. Read by the ORM
# before_flush hook in core.database to stamp and police tenant_id.
current_tenant_id: ContextVar[uuid.UUID | None] = ContextVar("current_tenant_id", default=None)


def get_current_tenant_id() -> uuid.UUID | None:
    return current_tenant_id.get()


@contextmanager
def tenant_context(tenant_id: uuid.UUID) -> Iterator[uuid.UUID]:
    """Bind ``tenant_id`` for the duration of a write.

    FastAPI runs sync dependencies and the endpoint body in separate worker
    threads with copied contexts, so a value set during auth is not visible to
    the endpoint. Services open this scope around their own flushes instead.
    """

    token = current_tenant_id.set(tenant_id)
    try:
        yield tenant_id
    finally:
        current_tenant_id.reset(token)
