"""
Entity store: typed access to users, books and transactions.

Two interchangeable backends implement the same contract:

- ``SqlStore`` wraps a SQLAlchemy session (SQLite or PostgreSQL).
- ``JsonStore`` keeps one JSON array per entity kind on disk, under a
  namespaced file name such as ``sl_books.json``.

Both return instances of the declarative models in ``models`` and both give
direct (synchronous) results. ``get``, ``update`` and ``delete`` raise the
kind's ``NotFound`` error for a missing id.

Writes that must land together go inside ``store.atomic()``. ``update`` with
``expect=`` is a compare-and-set: it only writes when the stored values still
match and returns ``None`` otherwise.
"""

from __future__ import annotations

import abc
import json
import logging
import os
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import DateTime, update as sql_update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import BookNotFound, NotFound, TransactionNotFound, UserNotFound, WriteConflict
from models import Book, LoanStatus, Transaction, User, utcnow

logger = logging.getLogger(__name__)

MODELS = {
    "users": User,
    "books": Book,
    "transactions": Transaction,
}

ID_PREFIXES = {
    "users": "usr",
    "books": "bk",
    "transactions": "txn",
}

_NOT_FOUND = {
    "users": UserNotFound,
    "books": BookNotFound,
    "transactions": TransactionNotFound,
}


def new_id(kind: str) -> str:
    return f"{ID_PREFIXES[kind]}_{uuid.uuid4().hex[:8]}"


def not_found(kind: str, entity_id: Any) -> NotFound:
    return _NOT_FOUND[kind](entity_id)


def _model(kind: str):
    try:
        return MODELS[kind]
    except KeyError:
        raise ValueError(f"Unknown entity kind: {kind}")


def _prepare_fields(kind: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(fields)
    if not data.get("id"):
        data["id"] = new_id(kind)
    model = _model(kind)
    if "created_at" in model.__table__.columns and not data.get("created_at"):
        data["created_at"] = utcnow()
    return data


def _stamp_update(kind: str, patch: Dict[str, Any]) -> Dict[str, Any]:
    data = {k: v for k, v in patch.items() if k != "id"}
    if "updated_at" in _model(kind).__table__.columns and "updated_at" not in data:
        data["updated_at"] = utcnow()
    return data


class EntityStore(abc.ABC):
    """Persistence contract shared by every backend."""

    @abc.abstractmethod
    def list(self, kind: str) -> List[Any]:
        ...

    @abc.abstractmethod
    def get(self, kind: str, entity_id: str) -> Any:
        ...

    @abc.abstractmethod
    def find(self, kind: str, **equals: Any) -> List[Any]:
        ...

    @abc.abstractmethod
    def create(self, kind: str, fields: Dict[str, Any]) -> Any:
        ...

    @abc.abstractmethod
    def update(
        self,
        kind: str,
        entity_id: str,
        patch: Dict[str, Any],
        expect: Optional[Dict[str, Any]] = None,
    ) -> Optional[Any]:
        ...

    @abc.abstractmethod
    def delete(self, kind: str, entity_id: str) -> None:
        ...

    @abc.abstractmethod
    def atomic(self):
        """Context manager: all writes inside commit together or not at all."""

    def find_one(self, kind: str, **equals: Any) -> Optional[Any]:
        found = self.find(kind, **equals)
        return found[0] if found else None


# --- SQLAlchemy backend ---

_ORDERING = {
    "users": (User.created_at, User.id),
    "books": (Book.created_at, Book.id),
    "transactions": (Transaction.issue_date, Transaction.id),
}


class SqlStore(EntityStore):
    def __init__(self, db: Session) -> None:
        self.db = db
        self._depth = 0

    @contextmanager
    def atomic(self) -> Iterator["SqlStore"]:
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self.db.rollback()
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                self.db.commit()

    def _flush(self, kind: str) -> None:
        try:
            self.db.flush()
            if self._depth == 0:
                self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            msg = str(e.orig) if getattr(e, "orig", None) else str(e)
            logger.info("Write to %s rejected by constraint: %s", kind, msg)
            raise WriteConflict(kind, msg)

    # reads always go to the database rather than the identity map, so
    # callers re-validate against what is committed right now

    def list(self, kind: str) -> List[Any]:
        model = _model(kind)
        return self.db.query(model).populate_existing().order_by(*_ORDERING[kind]).all()

    def get(self, kind: str, entity_id: str) -> Any:
        self.db.flush()
        obj = self.db.get(_model(kind), entity_id, populate_existing=True)
        if obj is None:
            raise not_found(kind, entity_id)
        return obj

    def find(self, kind: str, **equals: Any) -> List[Any]:
        model = _model(kind)
        query = self.db.query(model).populate_existing()
        for key, value in equals.items():
            query = query.filter(getattr(model, key) == value)
        return query.order_by(*_ORDERING[kind]).all()

    def create(self, kind: str, fields: Dict[str, Any]) -> Any:
        obj = _model(kind)(**_prepare_fields(kind, fields))
        self.db.add(obj)
        self._flush(kind)
        return obj

    def update(
        self,
        kind: str,
        entity_id: str,
        patch: Dict[str, Any],
        expect: Optional[Dict[str, Any]] = None,
    ) -> Optional[Any]:
        model = _model(kind)
        values = _stamp_update(kind, patch)

        if expect is None:
            obj = self.get(kind, entity_id)
            for key, value in values.items():
                setattr(obj, key, value)
            self._flush(kind)
            return obj

        # conditional write, evaluated by the database at write time
        stmt = (
            sql_update(model)
            .where(model.id == entity_id)
            .where(*[getattr(model, key) == value for key, value in expect.items()])
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            self.db.flush()
            result = self.db.execute(stmt)
        except IntegrityError as e:
            self.db.rollback()
            msg = str(e.orig) if getattr(e, "orig", None) else str(e)
            raise WriteConflict(kind, msg)
        if result.rowcount == 0:
            # either gone or changed underneath us
            self.get(kind, entity_id)
            return None
        self._flush(kind)
        return self.db.get(model, entity_id, populate_existing=True)

    def delete(self, kind: str, entity_id: str) -> None:
        obj = self.get(kind, entity_id)
        self.db.delete(obj)
        self._flush(kind)


# --- JSON file backend ---

def _encode(obj: Any) -> Dict[str, Any]:
    row = {}
    for column in obj.__table__.columns:
        value = getattr(obj, column.name)
        if isinstance(value, datetime):
            value = value.isoformat()
        row[column.name] = value
    return row


def _decode(kind: str, row: Dict[str, Any]) -> Any:
    model = _model(kind)
    data = {}
    for column in model.__table__.columns:
        value = row.get(column.name)
        if value is not None and isinstance(column.type, DateTime) and isinstance(value, str):
            value = datetime.fromisoformat(value)
        data[column.name] = value
    return model(**data)


class JsonStore(EntityStore):
    """Local persistence: one JSON array per kind, guarded by a per-directory lock.

    The lock is the single coordination point for every store instance that
    points at the same directory, so read-check-write sequences inside
    ``atomic()`` are serialized.
    """

    _locks: Dict[str, threading.RLock] = {}
    _locks_guard = threading.Lock()

    def __init__(self, data_dir: str, namespace: str = "sl") -> None:
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.namespace = namespace
        key = str(self.data_dir.resolve())
        with JsonStore._locks_guard:
            self._lock = JsonStore._locks.setdefault(key, threading.RLock())
        self._depth = 0
        self._pending: Dict[str, List[Dict[str, Any]]] = {}
        self._dirty: set = set()

    def _path(self, kind: str) -> Path:
        return self.data_dir / f"{self.namespace}_{kind}.json"

    def _load(self, kind: str) -> List[Dict[str, Any]]:
        path = self._path(kind)
        if not path.exists():
            return []
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _save(self, kind: str, rows: List[Dict[str, Any]]) -> None:
        path = self._path(kind)
        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(rows, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)

    @contextmanager
    def atomic(self) -> Iterator["JsonStore"]:
        with self._lock:
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self._pending = {}
                    self._dirty = set()
                raise
            else:
                self._depth -= 1
                if self._depth == 0:
                    for kind in self._dirty:
                        self._save(kind, self._pending[kind])
                    self._pending = {}
                    self._dirty = set()

    def _rows(self, kind: str) -> List[Dict[str, Any]]:
        _model(kind)
        if kind not in self._pending:
            self._pending[kind] = self._load(kind)
        return self._pending[kind]

    def _index_of(self, kind: str, entity_id: str) -> int:
        for i, row in enumerate(self._rows(kind)):
            if row["id"] == entity_id:
                return i
        raise not_found(kind, entity_id)

    def _check_constraints(self, kind: str, row: Dict[str, Any]) -> None:
        others = [r for r in self._rows(kind) if r["id"] != row["id"]]
        if kind == "users":
            for field in ("email", "usn"):
                if any(r.get(field) == row.get(field) for r in others):
                    raise WriteConflict(kind, f"users.{field}")
        elif kind == "books":
            if (row.get("quantity") or 0) < 0:
                raise WriteConflict(kind, "ck_books_quantity_non_negative")
        elif kind == "transactions" and row.get("status") == LoanStatus.ISSUED.value:
            for r in others:
                if (
                    r.get("status") == LoanStatus.ISSUED.value
                    and r.get("book_id") == row.get("book_id")
                    and r.get("user_id") == row.get("user_id")
                ):
                    raise WriteConflict(kind, "ux_transactions_active_loan")

    def list(self, kind: str) -> List[Any]:
        with self.atomic():
            return [_decode(kind, row) for row in self._rows(kind)]

    def get(self, kind: str, entity_id: str) -> Any:
        with self.atomic():
            return _decode(kind, self._rows(kind)[self._index_of(kind, entity_id)])

    def find(self, kind: str, **equals: Any) -> List[Any]:
        with self.atomic():
            return [
                _decode(kind, row)
                for row in self._rows(kind)
                if all(row.get(key) == value for key, value in equals.items())
            ]

    def create(self, kind: str, fields: Dict[str, Any]) -> Any:
        with self.atomic():
            obj = _model(kind)(**_prepare_fields(kind, fields))
            row = _encode(obj)
            if any(r["id"] == row["id"] for r in self._rows(kind)):
                raise WriteConflict(kind, f"{kind}.id")
            self._check_constraints(kind, row)
            self._rows(kind).append(row)
            self._dirty.add(kind)
            return _decode(kind, row)

    def update(
        self,
        kind: str,
        entity_id: str,
        patch: Dict[str, Any],
        expect: Optional[Dict[str, Any]] = None,
    ) -> Optional[Any]:
        with self.atomic():
            index = self._index_of(kind, entity_id)
            current = _decode(kind, self._rows(kind)[index])
            if expect is not None:
                for key, value in expect.items():
                    if getattr(current, key) != value:
                        return None
            for key, value in _stamp_update(kind, patch).items():
                setattr(current, key, value)
            row = _encode(current)
            self._check_constraints(kind, row)
            self._rows(kind)[index] = row
            self._dirty.add(kind)
            return _decode(kind, row)

    def delete(self, kind: str, entity_id: str) -> None:
        with self.atomic():
            index = self._index_of(kind, entity_id)
            del self._rows(kind)[index]
            self._dirty.add(kind)
