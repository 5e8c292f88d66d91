"""
Configuration persistence for servers and indexes.

A thin key/value view over a SQLAlchemy session: records are loaded, saved
and deleted by machine name, and can be looked up by a single field value.
Writes commit by default; pass `commit=False` to batch in the caller's
transaction.
"""

from __future__ import annotations

import logging
from typing import Any, Generic, Iterable, List, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import Base, SearchIndex, SearchServer

log = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=Base)


class ConfigStore(Generic[RecordT]):
    """Persist/load configuration records of one model by id."""

    def __init__(self, session: Session, model: Type[RecordT]) -> None:
        self.session = session
        self.model = model
        self.log_key = "index" if model is SearchIndex else "server"

    def load(self, ident: str) -> Optional[RecordT]:
        return self.session.get(self.model, ident)

    def load_multiple(self, ids: Iterable[str]) -> List[RecordT]:
        ids = list(ids)
        if not ids:
            return []
        rows = self.session.scalars(select(self.model).where(self.model.id.in_(ids))).all()
        by_id = {r.id: r for r in rows}
        return [by_id[i] for i in ids if i in by_id]

    def load_all(self) -> List[RecordT]:
        return list(self.session.scalars(select(self.model).order_by(self.model.id)).all())

    def save(self, record: RecordT, *, commit: bool = True) -> RecordT:
        self.session.add(record)
        if commit:
            try:
                self.session.commit()
            except IntegrityError:
                self.session.rollback()
                log.exception("config.save.integrity_error", extra={self.log_key: getattr(record, "id", None)})
                raise
        else:
            self.session.flush()
        return record

    def delete(self, ident: str, *, commit: bool = True) -> bool:
        record = self.load(ident)
        if record is None:
            return False
        self.session.delete(record)
        if commit:
            self.session.commit()
        else:
            self.session.flush()
        return True

    def query_by_field(self, field: str, value: Any) -> List[str]:
        column = getattr(self.model, field)
        stmt = select(self.model.id).where(column.is_(None) if value is None else column == value)
        return list(self.session.scalars(stmt.order_by(self.model.id)).all())


def server_store(session: Session) -> ConfigStore[SearchServer]:
    return ConfigStore(session, SearchServer)


def index_store(session: Session) -> ConfigStore[SearchIndex]:
    return ConfigStore(session, SearchIndex)
