"""
Generic table access, parameterised by model class.

Stores hold a Repository for their entity instead of inheriting from one.
Every call takes the SQLAlchemy session of the caller's transaction, and every
driver exception is caught here and returned as Failure(StorageError).
"""
from __future__ import annotations

import logging
from typing import Any, Generic, Iterable, List, Optional, Type, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from services.errors import StorageError
from utils.result import Result, fail, success

ModelT = TypeVar("ModelT")

logger = logging.getLogger(__name__)


class Repository(Generic[ModelT]):
    def __init__(self, model: Type[ModelT]):
        self.model = model
        self.name = model.__name__
        self.pk = model.__mapper__.primary_key[0]

    def insert(self, session: Session, obj: ModelT) -> Result[ModelT, StorageError]:
        """Add obj and flush so the generated key is available"""
        try:
            session.add(obj)
            session.flush()
        except IntegrityError as exc:
            logger.warning("[%s] Insert rejected by constraint: %s", self.name, exc.orig)
            return fail(StorageError(f"Failed inserting {self.name} due to conflict.", cause=exc))
        except SQLAlchemyError as exc:
            logger.exception("[%s] Insert operation failed.", self.name)
            return fail(StorageError(f"Failed inserting {self.name}.", cause=exc))
        return success(obj, "DB_INSERT")

    def first(self, session: Session, *criteria) -> Result[Optional[ModelT], StorageError]:
        try:
            row = session.scalars(select(self.model).where(*criteria).limit(1)).first()
        except SQLAlchemyError as exc:
            logger.exception("[%s] Query failed.", self.name)
            return fail(StorageError(f"Failed querying {self.name}.", cause=exc))
        return success(row, "DB_QUERY")

    def rows(self, session: Session, *criteria) -> Result[List[ModelT], StorageError]:
        """All rows matching criteria, ordered by the key"""
        stmt = select(self.model).where(*criteria).order_by(self.pk.asc())
        try:
            found = list(session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            logger.exception("[%s] Query failed.", self.name)
            return fail(StorageError(f"Failed querying {self.name}.", cause=exc))
        return success(found, "DB_QUERY")

    def ids(self, session: Session, *criteria) -> Result[List[Any], StorageError]:
        try:
            found = list(session.scalars(select(self.pk).where(*criteria).order_by(self.pk)).all())
        except SQLAlchemyError as exc:
            logger.exception("[%s] Query failed.", self.name)
            return fail(StorageError(f"Failed querying {self.name}.", cause=exc))
        return success(found, "DB_QUERY")

    def count(self, session: Session, *criteria) -> Result[int, StorageError]:
        try:
            total = session.scalar(select(func.count()).select_from(self.model).where(*criteria))
        except SQLAlchemyError as exc:
            logger.exception("[%s] Count failed.", self.name)
            return fail(StorageError(f"Failed counting {self.name}.", cause=exc))
        return success(int(total or 0), "DB_QUERY")

    def update(self, session: Session, *criteria, values: dict) -> Result[int, StorageError]:
        """Bulk UPDATE; the result is the number of rows changed"""
        stmt = update(self.model).where(*criteria).values(**values)
        try:
            changed = session.execute(stmt).rowcount
        except SQLAlchemyError as exc:
            logger.exception("[%s] Update failed.", self.name)
            return fail(StorageError(f"Failed updating {self.name}.", cause=exc))
        return success(changed or 0, "DB_UPDATE")

    def delete_by_ids(self, session: Session, ids: Iterable[Any]) -> Result[List[Any], StorageError]:
        ids = list(ids)
        if not ids:
            return success([], "DB_DELETE")
        return self.delete_where(session, self.pk.in_(ids), expected=ids)

    def delete_where(self, session: Session, *criteria, expected=None) -> Result[List[Any], StorageError]:
        """Bulk DELETE; returns the keys that matched (expected, when the caller already selected them)"""
        try:
            if expected is None:
                expected = list(session.scalars(select(self.pk).where(*criteria)).all())
            session.execute(delete(self.model).where(*criteria))
        except SQLAlchemyError as exc:
            logger.exception("[%s] Delete failed.", self.name)
            return fail(StorageError(f"Failed deleting {self.name}.", cause=exc))
        return success(list(expected), "DB_DELETE")
