# Overview: Generic persistence boundary over the Flask-SQLAlchemy session.

"""
Repository

Services depend on this small interface instead of touching db.session
directly, so the storage collaborator can be swapped or faked in tests.
Every SQLAlchemy failure crosses the boundary as RepositoryError except
the concurrency conflicts (OperationalError, StaleDataError), which pass
through untouched for run_with_retry in services/concurrency.py.
"""

from __future__ import annotations

from typing import Any, Generic, Iterable, TypeVar

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from .extensions import db


ModelT = TypeVar("ModelT")

# Lock contention and optimistic version conflicts; retried by the caller
CONFLICT_ERRORS = (OperationalError, StaleDataError)


class RepositoryError(Exception):
    """Storage unavailable or rejected the operation (5xx)."""


def _wrap(exc: SQLAlchemyError, action: str) -> RepositoryError:
    return RepositoryError(f"Storage failure during {action}: {exc.__class__.__name__}")


class Repository(Generic[ModelT]):
    """Key-addressed CRUD plus simple predicate queries for one model."""

    def __init__(self, model: type[ModelT], session=None):
        self.model = model
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def get(self, record_id: Any) -> ModelT | None:
        try:
            return self.session.get(self.model, record_id)
        except SQLAlchemyError as exc:
            raise _wrap(exc, f"get {self.model.__name__}") from exc

    def get_for_update(self, record_id: Any) -> ModelT | None:
        """
        Load with row-level locking and fresh state.

        NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
        """
        try:
            return (
                self.session.query(self.model)
                .filter_by(id=record_id)
                .populate_existing()
                .with_for_update()
                .first()
            )
        except CONFLICT_ERRORS:
            raise
        except SQLAlchemyError as exc:
            raise _wrap(exc, f"lock {self.model.__name__}") from exc

    def find_one(self, *criteria, **filters) -> ModelT | None:
        try:
            return self.session.query(self.model).filter(*criteria).filter_by(**filters).first()
        except SQLAlchemyError as exc:
            raise _wrap(exc, f"query {self.model.__name__}") from exc

    def find_all(
        self,
        *criteria,
        order_by: Iterable | None = None,
        offset: int | None = None,
        limit: int | None = None,
        **filters,
    ) -> list[ModelT]:
        try:
            query = self.session.query(self.model).filter(*criteria).filter_by(**filters)
            if order_by is not None:
                query = query.order_by(*order_by)
            if offset:
                query = query.offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return query.all()
        except SQLAlchemyError as exc:
            raise _wrap(exc, f"query {self.model.__name__}") from exc

    def count(self, *criteria, **filters) -> int:
        try:
            return self.session.query(self.model).filter(*criteria).filter_by(**filters).count()
        except SQLAlchemyError as exc:
            raise _wrap(exc, f"count {self.model.__name__}") from exc

    def add(self, record: ModelT) -> ModelT:
        try:
            self.session.add(record)
            self.session.flush()
        except CONFLICT_ERRORS:
            self.session.rollback()
            raise
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise _wrap(exc, f"add {self.model.__name__}") from exc
        return record

    def delete(self, record: ModelT) -> None:
        try:
            self.session.delete(record)
            self.session.flush()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise _wrap(exc, f"delete {self.model.__name__}") from exc

    def commit(self) -> None:
        """
        Commit the unit of work.

        Conflict errors are re-raised untouched after rollback so
        run_with_retry can retry the whole read-modify-write.
        """
        try:
            self.session.commit()
        except CONFLICT_ERRORS:
            self.session.rollback()
            raise
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise _wrap(exc, "commit") from exc

    def rollback(self) -> None:
        self.session.rollback()
