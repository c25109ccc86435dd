# project_service/db.py
# Document store over SQLAlchemy: PostgreSQL (production, jsonb) and SQLite (dev, JSON text)
#
# Each collection is one table of (seq, id, doc). Every operation touches a
# single document in a single statement; there is no cross-document atomicity.

from __future__ import annotations

import asyncio
import json
import re
import secrets
from pathlib import Path as FsPath
from typing import Any, Callable, Dict, List, Mapping, Optional
from urllib.parse import urlparse

from sqlalchemy import create_engine, pool, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

try:
    from project_service.config import DATABASE_PATH, DATABASE_URL, IS_DEV, STORE_TIMEOUT_SECONDS
    from project_service.errors import OperationTimeout, StoreError
except ModuleNotFoundError:
    from config import DATABASE_PATH, DATABASE_URL, IS_DEV, STORE_TIMEOUT_SECONDS
    from errors import OperationTimeout, StoreError


PROJECTS = "Projects"
TASKS = "Tasks"

# Collection name -> table name
COLLECTIONS = {
    PROJECTS: "projects",
    TASKS: "tasks",
}

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def new_object_id() -> str:
    """24-character opaque identifier (96 random bits, hex)."""
    return secrets.token_hex(12)


def _table(collection: str) -> str:
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise ValueError(f"Unknown collection: {collection}")


def _field(name: str) -> str:
    # Field names are interpolated into JSON paths, so only plain identifiers pass
    if not _FIELD_RE.match(name):
        raise ValueError(f"Invalid document field name: {name!r}")
    return name


def _load_doc(raw: Any) -> Dict[str, Any]:
    # psycopg2 decodes jsonb to dict; SQLite hands back text
    if isinstance(raw, dict):
        return dict(raw)
    return json.loads(raw)


class DocumentStore:
    """
    Typed insert/find/replace/delete over the Projects and Tasks collections.

    All public methods are coroutines. The blocking SQLAlchemy call runs in a
    worker thread under `timeout` seconds; overrunning raises OperationTimeout
    and driver failures raise StoreError.
    """

    def __init__(
        self,
        database_url: str = DATABASE_URL,
        database_path: str = DATABASE_PATH,
        timeout: float = STORE_TIMEOUT_SECONDS,
    ) -> None:
        self.timeout = timeout
        self.is_postgres = database_url.startswith(("postgres://", "postgresql://"))

        if self.is_postgres:
            parsed = urlparse(database_url)
            if not parsed.scheme or not parsed.netloc:
                raise ValueError(f"Invalid DATABASE_URL: {database_url[:20]}...")
            # SQLAlchemy only accepts the postgresql:// scheme
            url = database_url.replace("postgres://", "postgresql://", 1)
            self.engine: Engine = create_engine(
                url,
                poolclass=pool.QueuePool,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
                echo=False,
            )
            print(f"[DB] Using PostgreSQL ({parsed.hostname})")
        else:
            db_path = str(FsPath(__file__).resolve().parent / database_path)
            self.engine = create_engine(
                f"sqlite:///{db_path}",
                connect_args={"check_same_thread": False, "timeout": timeout},
            )
            print(f"[DB] Using SQLite ({db_path})")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def init_schema(self) -> None:
        """Create collection tables if missing. Safe to call repeatedly."""
        with self.engine.begin() as conn:
            for table in COLLECTIONS.values():
                if self.is_postgres:
                    conn.execute(text(
                        f"CREATE TABLE IF NOT EXISTS {table} ("
                        " seq BIGSERIAL PRIMARY KEY,"
                        " id VARCHAR(24) NOT NULL UNIQUE,"
                        " doc JSONB NOT NULL)"
                    ))
                else:
                    conn.execute(text(
                        f"CREATE TABLE IF NOT EXISTS {table} ("
                        " seq INTEGER PRIMARY KEY AUTOINCREMENT,"
                        " id TEXT NOT NULL UNIQUE,"
                        " doc TEXT NOT NULL)"
                    ))

    def close(self) -> None:
        self.engine.dispose()

    async def _run(self, op: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.timeout)
        except asyncio.TimeoutError:
            # The worker thread keeps running; a write may still commit after this
            print(f"[DB] Deadline exceeded: op={op}, timeout={self.timeout}s")
            raise OperationTimeout(f"Document store {op} exceeded {self.timeout}s")
        except SQLAlchemyError as exc:
            print(f"[DB] ERROR: op={op}: {exc}")
            raise StoreError(f"Document store {op} failed") from exc

    def _doc_param(self) -> str:
        return "CAST(:doc AS jsonb)" if self.is_postgres else ":doc"

    # ------------------------------------------------------------------
    # Basic document operations
    # ------------------------------------------------------------------
    async def insert(self, collection: str, record: Mapping[str, Any]) -> str:
        """Insert a record and return its id (generated unless the record carries one)."""
        return await self._run("insert", self._insert, collection, dict(record))

    def _insert(self, collection: str, record: Dict[str, Any]) -> str:
        table = _table(collection)
        doc_id = record.pop("id", None) or new_object_id()
        with self.engine.begin() as conn:
            conn.execute(
                text(f"INSERT INTO {table} (id, doc) VALUES (:id, {self._doc_param()})"),
                {"id": doc_id, "doc": json.dumps(record)},
            )
        return doc_id

    async def find_by_id(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return await self._run("find_by_id", self._find_by_id, collection, doc_id)

    def _find_by_id(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        table = _table(collection)
        with self.engine.connect() as conn:
            row = conn.execute(
                text(f"SELECT id, doc FROM {table} WHERE id = :id"),
                {"id": doc_id},
            ).first()
        if row is None:
            return None
        doc = _load_doc(row.doc)
        doc["id"] = row.id
        return doc

    async def find_all(
        self, collection: str, predicate: Optional[Mapping[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """Records whose top-level fields equal every value in `predicate`, in insertion order."""
        return await self._run("find_all", self._find_all, collection, dict(predicate or {}))

    def _find_all(self, collection: str, predicate: Dict[str, Any]) -> List[Dict[str, Any]]:
        table = _table(collection)
        clauses = []
        params: Dict[str, Any] = {}
        for i, (name, value) in enumerate(predicate.items()):
            key = f"p{i}"
            if self.is_postgres:
                clauses.append(f"doc->'{_field(name)}' = CAST(:{key} AS jsonb)")
                params[key] = json.dumps(value)
            else:
                clauses.append(f"json_extract(doc, '$.{_field(name)}') = :{key}")
                params[key] = value
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        with self.engine.connect() as conn:
            rows = conn.execute(
                text(f"SELECT id, doc FROM {table}{where} ORDER BY seq"),
                params,
            ).all()
        out = []
        for row in rows:
            doc = _load_doc(row.doc)
            doc["id"] = row.id
            out.append(doc)
        return out

    async def replace(self, collection: str, doc_id: str, record: Mapping[str, Any]) -> bool:
        """Overwrite the whole document. False when no document has this id."""
        return await self._run("replace", self._replace, collection, doc_id, dict(record))

    def _replace(self, collection: str, doc_id: str, record: Dict[str, Any]) -> bool:
        table = _table(collection)
        record.pop("id", None)
        with self.engine.begin() as conn:
            result = conn.execute(
                text(f"UPDATE {table} SET doc = {self._doc_param()} WHERE id = :id"),
                {"id": doc_id, "doc": json.dumps(record)},
            )
        return result.rowcount > 0

    async def delete(self, collection: str, doc_id: str) -> bool:
        return await self._run("delete", self._delete, collection, doc_id)

    def _delete(self, collection: str, doc_id: str) -> bool:
        table = _table(collection)
        with self.engine.begin() as conn:
            result = conn.execute(text(f"DELETE FROM {table} WHERE id = :id"), {"id": doc_id})
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Atomic single-statement updates
    # ------------------------------------------------------------------
    async def set_fields(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> bool:
        """Merge top-level fields into the document ($set). False when not found."""
        for name in fields:
            _field(name)
        return await self._run("set_fields", self._set_fields, collection, doc_id, dict(fields))

    def _set_fields(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> bool:
        table = _table(collection)
        if self.is_postgres:
            sql = f"UPDATE {table} SET doc = doc || CAST(:patch AS jsonb) WHERE id = :id"
        else:
            # json_patch drops keys whose new value is null; readers treat absent as null
            sql = f"UPDATE {table} SET doc = json_patch(doc, :patch) WHERE id = :id"
        with self.engine.begin() as conn:
            result = conn.execute(text(sql), {"id": doc_id, "patch": json.dumps(fields)})
        return result.rowcount > 0

    async def push_to_array(
        self, collection: str, doc_id: str, field: str, value: str, unique: bool = False
    ) -> bool:
        """
        Append `value` to an array field in one statement ($push, or $addToSet when unique).

        Returns True iff the document was modified. With unique=True an
        already-present value leaves the document untouched and returns False.
        """
        return await self._run(
            "push_to_array", self._push_to_array, collection, doc_id, _field(field), value, unique
        )

    def _push_to_array(self, collection: str, doc_id: str, field: str, value: str, unique: bool) -> bool:
        table = _table(collection)
        if self.is_postgres:
            sql = (
                f"UPDATE {table} SET doc = jsonb_set(doc, '{{{field}}}', "
                f"COALESCE(doc->'{field}', CAST('[]' AS jsonb)) || jsonb_build_array(CAST(:value AS text)), true) "
                f"WHERE id = :id"
            )
            if unique:
                sql += (
                    f" AND NOT (COALESCE({table}.doc->'{field}', CAST('[]' AS jsonb))"
                    f" @> jsonb_build_array(CAST(:value AS text)))"
                )
        else:
            sql = (
                f"UPDATE {table} SET doc = json_set(doc, '$.{field}', "
                f"json_insert(COALESCE(json_extract(doc, '$.{field}'), '[]'), '$[#]', :value)) "
                f"WHERE id = :id"
            )
            if unique:
                sql += (
                    f" AND NOT EXISTS (SELECT 1 FROM json_each({table}.doc, '$.{field}') AS e"
                    f" WHERE e.value = :value)"
                )
        with self.engine.begin() as conn:
            result = conn.execute(text(sql), {"id": doc_id, "value": value})
        return result.rowcount > 0

    async def pull_from_array(self, collection: str, doc_id: str, field: str, value: str) -> bool:
        """
        Remove every occurrence of `value` from an array field in one statement ($pull).

        Returns True iff the value was present (and is now gone).
        """
        return await self._run(
            "pull_from_array", self._pull_from_array, collection, doc_id, _field(field), value
        )

    def _pull_from_array(self, collection: str, doc_id: str, field: str, value: str) -> bool:
        table = _table(collection)
        if self.is_postgres:
            sql = (
                f"UPDATE {table} SET doc = jsonb_set(doc, '{{{field}}}', COALESCE(("
                f"SELECT jsonb_agg(e.elem ORDER BY e.ord) "
                f"FROM jsonb_array_elements({table}.doc->'{field}') WITH ORDINALITY AS e(elem, ord) "
                f"WHERE e.elem <> to_jsonb(CAST(:value AS text))"
                f"), CAST('[]' AS jsonb)), true) "
                f"WHERE id = :id AND COALESCE({table}.doc->'{field}', CAST('[]' AS jsonb))"
                f" @> jsonb_build_array(CAST(:value AS text))"
            )
        else:
            sql = (
                f"UPDATE {table} SET doc = json_set(doc, '$.{field}', json(("
                f"SELECT json_group_array(e.value) FROM json_each({table}.doc, '$.{field}') AS e "
                f"WHERE e.value != :value))) "
                f"WHERE id = :id AND EXISTS (SELECT 1 FROM json_each({table}.doc, '$.{field}') AS e"
                f" WHERE e.value = :value)"
            )
        with self.engine.begin() as conn:
            result = conn.execute(text(sql), {"id": doc_id, "value": value})
        modified = result.rowcount > 0
        if IS_DEV:
            print(f"[DB] pull {collection}.{field}: id={doc_id}, modified={modified}")
        return modified
