"""
RecordStore -- generic create/read/update/delete over the ORM models.

Responsibility:
    The record store that engines and services use for routine CRUD.  It
    speaks plain dict records keyed by field name, so that nothing above
    the kernel handles ORM instances.  Entity types are registered by name:
    ``product``, ``client``, ``invoice``, ``invoice_item``, ``payment``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Follows the
    flush-only contract of BaseService; ``store_scope`` owns the commit.

Invariants enforced:
    - Records returned are detached copies (dicts), never live ORM rows.
    - ``get(..., for_update=True)`` issues ``SELECT ... FOR UPDATE`` so that
      a read-check-write sequence (stock decrement) holds the row lock on
      backends that support it.

Failure modes:
    - KeyError-free: an unknown entity type raises InvalidArgumentError.
    - RecordNotFoundError on update/delete of a missing id.
    - StoreUnavailableError when the database cannot be reached
      (OperationalError, InterfaceError, invalidated connections).  Integrity
      errors are not connectivity errors and propagate unchanged.
"""

from __future__ import annotations

from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Any
from uuid import UUID

from sqlalchemy import inspect, select
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from venue_kernel.db.base import Base
from venue_kernel.db.engine import session_scope
from venue_kernel.exceptions import (
    InvalidArgumentError,
    RecordNotFoundError,
    StoreUnavailableError,
)
from venue_kernel.logging_config import get_logger
from venue_kernel.models import (
    ClientModel,
    InvoiceItemModel,
    InvoiceModel,
    PaymentModel,
    ProductModel,
)
from venue_kernel.services.base import BaseService

logger = get_logger("services.record_store")

# Actor recorded on rows written without an explicit actor.
SYSTEM_ACTOR_ID = UUID(int=0)

ENTITY_MODELS: dict[str, type[Base]] = {
    "product": ProductModel,
    "client": ClientModel,
    "invoice": InvoiceModel,
    "invoice_item": InvoiceItemModel,
    "payment": PaymentModel,
}

Record = dict[str, Any]


@contextmanager
def _translate_store_errors(operation: str) -> Iterator[None]:
    """Map connectivity failures to StoreUnavailableError."""
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        logger.error(
            "record_store_unavailable",
            extra={"operation": operation, "error": str(exc.orig or exc)},
        )
        raise StoreUnavailableError(operation, str(exc.orig or exc)) from exc
    except DBAPIError as exc:
        if not exc.connection_invalidated:
            raise
        logger.error(
            "record_store_connection_invalidated",
            extra={"operation": operation},
        )
        raise StoreUnavailableError(operation, "connection invalidated") from exc


def _to_record(row: Base) -> Record:
    mapper = inspect(type(row))
    return {attr.key: getattr(row, attr.key) for attr in mapper.column_attrs}


class RecordStore(BaseService):
    """
    Field-keyed CRUD over the registered entity types.

    Contract:
        Every method takes an entity type name and works on plain dicts.
        Writes are flushed, not committed.

    Non-goals:
        - No query language beyond equality filters.
        - No caching: every ``get`` reads the current row.
    """

    def __init__(self, session: Session, actor_id: UUID = SYSTEM_ACTOR_ID):
        super().__init__(session)
        self.actor_id = actor_id

    def _model(self, entity_type: str) -> type[Base]:
        try:
            return ENTITY_MODELS[entity_type]
        except KeyError:
            raise InvalidArgumentError(
                "entity_type", entity_type, f"must be one of {sorted(ENTITY_MODELS)}"
            ) from None

    def _load(self, model: type[Base], entity_id: UUID, for_update: bool) -> Base | None:
        stmt = select(model).where(model.id == entity_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get(
        self,
        entity_type: str,
        entity_id: UUID,
        for_update: bool = False,
    ) -> Record | None:
        """Fetch one record by id, or None when it does not exist."""
        model = self._model(entity_type)
        with _translate_store_errors(f"get {entity_type}"):
            row = self._load(model, entity_id, for_update)
        return _to_record(row) if row is not None else None

    def list(
        self,
        entity_type: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[Record]:
        """All records whose fields equal every value in ``filters``."""
        model = self._model(entity_type)
        stmt = select(model)
        for field, value in (filters or {}).items():
            column = getattr(model, field, None)
            if column is None:
                raise InvalidArgumentError("filters", field, f"unknown field on {entity_type}")
            stmt = stmt.where(column == value)
        if order_by is not None:
            stmt = stmt.order_by(getattr(model, order_by))
        stmt = stmt.order_by(model.created_at, model.id)
        with _translate_store_errors(f"list {entity_type}"):
            rows = self.session.execute(stmt).scalars().all()
        return [_to_record(row) for row in rows]

    def create(self, entity_type: str, fields: dict[str, Any]) -> Record:
        """Insert a record.  ``id`` and ``created_by_id`` default when absent."""
        model = self._model(entity_type)
        values = dict(fields)
        values.setdefault("created_by_id", self.actor_id)
        row = model(**values)
        with _translate_store_errors(f"create {entity_type}"):
            self.session.add(row)
            self.session.flush()
            self.session.refresh(row)
        logger.debug(
            "record_created",
            extra={"entity_type": entity_type, "entity_id": str(row.id)},
        )
        return _to_record(row)

    def update(self, entity_type: str, entity_id: UUID, fields: dict[str, Any]) -> Record:
        """Apply ``fields`` to an existing record and return the new state."""
        model = self._model(entity_type)
        with _translate_store_errors(f"update {entity_type}"):
            row = self._load(model, entity_id, for_update=False)
            if row is None:
                raise RecordNotFoundError(entity_type, str(entity_id))
            for field, value in fields.items():
                if field == "id":
                    raise InvalidArgumentError("fields", field, "id is immutable")
                setattr(row, field, value)
            row.updated_by_id = self.actor_id
            self.session.flush()
        logger.debug(
            "record_updated",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "fields": sorted(fields),
            },
        )
        return _to_record(row)

    def delete(self, entity_type: str, entity_id: UUID) -> None:
        model = self._model(entity_type)
        with _translate_store_errors(f"delete {entity_type}"):
            row = self._load(model, entity_id, for_update=False)
            if row is None:
                raise RecordNotFoundError(entity_type, str(entity_id))
            self.session.delete(row)
            self.session.flush()
        logger.debug(
            "record_deleted",
            extra={"entity_type": entity_type, "entity_id": str(entity_id)},
        )


@contextmanager
def store_scope(
    factory: sessionmaker[Session] | None = None,
    actor_id: UUID = SYSTEM_ACTOR_ID,
) -> Generator[RecordStore, None, None]:
    """
    Unit of work around a RecordStore.

    Commits on normal exit and rolls back on error (see ``session_scope``).
    Connectivity failures during commit surface as StoreUnavailableError.
    """
    with _translate_store_errors("transaction"):
        with session_scope(factory) as session:
            yield RecordStore(session, actor_id=actor_id)
