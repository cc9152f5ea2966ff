"""
SQLite Backing Store - durable storage behind the root context.

One file per application. Tables:
- records: one row per record, field values as JSON
- schema: field fingerprint per entity, for lightweight migration
- meta: store-level values (schema version)

Only the root context talks to the store, and only from its own queue.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Generator, Iterable
from uuid import UUID

from pydantic import ValidationError
from pydantic_core import to_jsonable_python

from dataman.core.config import get_logger
from dataman.core.errors import MigrationError, ResolutionError, StoreError
from dataman.core.predicate import Predicate
from dataman.core.types import ChangeSet, ObjectID
from dataman.storage.registry import EntityRegistry

logger = get_logger("storage.store")


class BackingStore:
    """
    SQLite store for records of every registered entity.
    
    Use `BackingStore.open()`, which creates the file and migrates it to
    the registry's schema before handing the store back.
    """
    
    def __init__(self, db_path: Path, registry: EntityRegistry):
        self.db_path = db_path
        self.registry = registry
    
    @classmethod
    def open(
        cls,
        location: Path,
        registry: EntityRegistry,
        migrate_automatically: bool = True,
        infer_mapping_automatically: bool = True,
    ) -> "BackingStore":
        """Open or create the store at `location` for `registry`'s schema."""
        store = cls(Path(location), registry)
        try:
            store.db_path.parent.mkdir(parents=True, exist_ok=True)
            store._init_db()
            store._migrate(migrate_automatically, infer_mapping_automatically)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open store at {location}: {e}") from e
        except OSError as e:
            raise StoreError(f"Cannot create store at {location}: {e}") from e
        logger.info(f"Opened store {store.db_path} (schema version {store.schema_version})")
        return store
    
    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS records (
                    id TEXT PRIMARY KEY,
                    entity TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_records_entity ON records(entity)")
            
            conn.execute("""
                CREATE TABLE IF NOT EXISTS schema (
                    entity TEXT PRIMARY KEY,
                    fields TEXT NOT NULL
                )
            """)
            
            conn.execute("""
                CREATE TABLE IF NOT EXISTS meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            conn.execute("INSERT OR IGNORE INTO meta (key, value) VALUES ('schema_version', '0')")
            conn.commit()
    
    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()
    
    @property
    def schema_version(self) -> int:
        with self._get_connection() as conn:
            row = conn.execute("SELECT value FROM meta WHERE key = 'schema_version'").fetchone()
            return int(row["value"]) if row else 0
    
    # ==========================================
    # Lightweight migration
    # ==========================================
    
    def _migrate(self, migrate_automatically: bool, infer_mapping_automatically: bool) -> None:
        """
        Bring stored records in line with the registry's schema.
        
        Added fields get their default (or null when optional); removed
        fields and removed entities are dropped. A changed field type, or a
        new required field without default, has no inferable mapping.
        """
        with self._get_connection() as conn:
            stored = {
                row["entity"]: json.loads(row["fields"])
                for row in conn.execute("SELECT entity, fields FROM schema").fetchall()
            }
            current = {name: self.registry.fingerprint(name) for name in self.registry}
            
            if stored == current:
                return
            
            populated = {
                row["entity"]
                for row in conn.execute("SELECT DISTINCT entity FROM records").fetchall()
            }
            needs_migration = any(
                entity in populated and stored.get(entity) != current.get(entity)
                for entity in set(stored) | set(current)
            )
            
            if needs_migration:
                if not migrate_automatically:
                    raise MigrationError(f"Store {self.db_path} uses a different schema and automatic migration is disabled")
                if not infer_mapping_automatically:
                    raise MigrationError(f"Store {self.db_path} uses a different schema and no mapping can be inferred")
                try:
                    for entity in sorted(populated):
                        self._migrate_entity(conn, entity, stored.get(entity, {}), current.get(entity))
                except Exception:
                    conn.rollback()
                    raise
            
            conn.execute("DELETE FROM schema")
            conn.executemany(
                "INSERT INTO schema (entity, fields) VALUES (?, ?)",
                [(entity, json.dumps(fields, sort_keys=True)) for entity, fields in current.items()],
            )
            conn.execute("UPDATE meta SET value = CAST(value AS INTEGER) + 1 WHERE key = 'schema_version'")
            conn.commit()
            logger.info(f"Migrated store {self.db_path} to the current schema")
    
    def _migrate_entity(
        self,
        conn: sqlite3.Connection,
        entity: str,
        old: dict[str, dict[str, Any]],
        new: dict[str, dict[str, Any]] | None,
    ) -> None:
        if new is None:
            deleted = conn.execute("DELETE FROM records WHERE entity = ?", (entity,)).rowcount
            logger.info(f"Dropped {deleted} records of removed entity {entity}")
            return
        if old == new:
            return
        
        record_class = self.registry.resolve(entity)
        defaults: dict[str, Any] = {}
        for name, description in new.items():
            previous = old.get(name)
            if previous is not None:
                if previous["type"] != description["type"]:
                    raise MigrationError(f"Cannot infer mapping for {entity}.{name}: type changed from {previous['type']} to {description['type']}")
                continue
            info = record_class.model_fields[name]
            if info.is_required():
                raise MigrationError(f"Cannot infer value for new required field {entity}.{name}")
            defaults[name] = to_jsonable_python(info.get_default(call_default_factory=True))
        removed = [name for name in old if name not in new]
        
        now = datetime.now().isoformat()
        rows = conn.execute("SELECT id, data FROM records WHERE entity = ?", (entity,)).fetchall()
        for row in rows:
            data = json.loads(row["data"])
            for name in removed:
                data.pop(name, None)
            for name, value in defaults.items():
                data.setdefault(name, value)
            conn.execute(
                "UPDATE records SET data = ?, updated_at = ? WHERE id = ?",
                (json.dumps(data), now, row["id"]),
            )
        logger.info(f"Migrated {len(rows)} records of {entity} (+{list(defaults)} -{removed})")
    
    # ==========================================
    # Reads
    # ==========================================
    
    def _decode(self, entity: str, data: str) -> dict[str, Any]:
        """Validate a stored JSON payload back into typed field values."""
        try:
            record_class = self.registry.resolve(entity)
            return dict(record_class.model_validate(json.loads(data)))
        except (ResolutionError, ValidationError, ValueError) as e:
            raise StoreError(f"Corrupt {entity} record in store: {e}") from e
    
    def load(self, entity: str, predicate: Predicate | None = None) -> dict[ObjectID, dict[str, Any]]:
        """Load every stored record of `entity` matching `predicate`, in insertion order."""
        sql = "SELECT id, data FROM records WHERE entity = ?"
        params: list[Any] = [entity]
        if predicate is not None:
            clause, clause_params = predicate.to_sql("data")
            sql += f" AND {clause}"
            params.extend(clause_params)
        sql += " ORDER BY rowid"
        
        try:
            with self._get_connection() as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Fetch of {entity} failed: {e}") from e
        
        return {
            ObjectID(entity=entity, key=UUID(row["id"])): self._decode(entity, row["data"])
            for row in rows
        }
    
    def load_objects(self, object_ids: Iterable[ObjectID]) -> dict[ObjectID, dict[str, Any]]:
        """Load stored records by identifier. Missing identifiers are left out."""
        wanted = {str(oid.key): oid for oid in object_ids}
        if not wanted:
            return {}
        placeholders = ", ".join("?" for _ in wanted)
        try:
            with self._get_connection() as conn:
                rows = conn.execute(
                    f"SELECT id, entity, data FROM records WHERE id IN ({placeholders})",
                    list(wanted),
                ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Object lookup failed: {e}") from e
        
        result: dict[ObjectID, dict[str, Any]] = {}
        for row in rows:
            oid = wanted[row["id"]]
            if oid.entity == row["entity"]:
                result[oid] = self._decode(row["entity"], row["data"])
        return result
    
    def count(self, entity: str | None = None) -> int:
        """Count stored records, optionally of one entity."""
        with self._get_connection() as conn:
            if entity is None:
                row = conn.execute("SELECT COUNT(*) AS n FROM records").fetchone()
            else:
                row = conn.execute("SELECT COUNT(*) AS n FROM records WHERE entity = ?", (entity,)).fetchone()
            return row["n"]
    
    # ==========================================
    # Writes
    # ==========================================
    
    def persist(self, changes: ChangeSet) -> None:
        """Apply a change set in one transaction. Raises StoreError on failure."""
        now = datetime.now().isoformat()
        with self._get_connection() as conn:
            try:
                for oid, values in changes.inserted.items():
                    conn.execute(
                        "INSERT INTO records (id, entity, data, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                        (str(oid.key), oid.entity, json.dumps(to_jsonable_python(values)), now, now),
                    )
                
                for oid, values in changes.updated.items():
                    row = conn.execute("SELECT data FROM records WHERE id = ?", (str(oid.key),)).fetchone()
                    if row is None:
                        raise StoreError(f"Cannot update {oid}: no such record in store")
                    data = json.loads(row["data"])
                    data.update(to_jsonable_python(values))
                    conn.execute(
                        "UPDATE records SET data = ?, updated_at = ? WHERE id = ?",
                        (json.dumps(data), now, str(oid.key)),
                    )
                
                for oid in changes.deleted:
                    conn.execute("DELETE FROM records WHERE id = ?", (str(oid.key),))
                
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StoreError(f"Persist failed: {e}") from e
            except StoreError:
                conn.rollback()
                raise
        
        logger.debug(
            f"Persisted {len(changes.inserted)} inserted, {len(changes.updated)} updated, "
            f"{len(changes.deleted)} deleted records"
        )
