import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from threading import RLock
from typing import Generic, Iterator, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel

from servicebook.models import Booking, Client, ServiceProvider


logger = logging.getLogger(__name__)

# Fixed partition ids inside the shared tables. The counter cell lives in
# its own table but keeps id 0 so the numbering stays stable on disk.
COUNTER_CELL = 0
PROVIDERS_PARTITION = 1
BOOKINGS_PARTITION = 2
CLIENTS_PARTITION = 3

FIRST_ID = 1

# SQLite INTEGER is signed 64-bit; larger ids can never have been stored.
SQLITE_MAX_INTEGER = 2**63 - 1

E = TypeVar("E", bound=BaseModel)


class IdAllocator:
    """Durable counter shared by every entity kind.

    ``next_id`` hands out the stored value and persists value + 1. Calls run
    inside the storage transaction, so a rolled back operation also rolls
    back the counter and the id is issued again to the next caller.
    """

    def __init__(self, storage: "Storage", cell: int = COUNTER_CELL, initial: int = FIRST_ID) -> None:
        self._storage = storage
        self._cell = cell
        self._initial = initial

    def current(self) -> int:
        with self._storage.transaction() as conn:
            row = conn.execute("SELECT value FROM counters WHERE cell = ?", (self._cell,)).fetchone()
        return int(row["value"]) if row else self._initial

    def next_id(self) -> int:
        with self._storage.transaction() as conn:
            row = conn.execute("SELECT value FROM counters WHERE cell = ?", (self._cell,)).fetchone()
            current = int(row["value"]) if row else self._initial
            conn.execute(
                """
                INSERT INTO counters (cell, value)
                VALUES (?, ?)
                ON CONFLICT(cell) DO UPDATE SET value = excluded.value
                """,
                (self._cell, current + 1),
            )
        return current


class EntityStore(Generic[E]):
    """Ordered id -> record map for one entity kind, persisted as JSON."""

    def __init__(self, storage: "Storage", partition: int, model: Type[E]) -> None:
        self._storage = storage
        self._partition = partition
        self._model = model

    @property
    def partition(self) -> int:
        return self._partition

    def _fetch(self, conn: sqlite3.Connection, entity_id: int) -> Optional[E]:
        if not -SQLITE_MAX_INTEGER - 1 <= entity_id <= SQLITE_MAX_INTEGER:
            return None
        row = conn.execute(
            "SELECT payload FROM entities WHERE partition = ? AND id = ?",
            (self._partition, entity_id),
        ).fetchone()
        if not row:
            return None
        return self._model.model_validate_json(row["payload"])

    def insert(self, entity_id: int, entity: E) -> Optional[E]:
        with self._storage.transaction() as conn:
            previous = self._fetch(conn, entity_id)
            conn.execute(
                """
                INSERT INTO entities (partition, id, payload)
                VALUES (?, ?, ?)
                ON CONFLICT(partition, id) DO UPDATE SET payload = excluded.payload
                """,
                (self._partition, entity_id, entity.model_dump_json()),
            )
        return previous

    def get(self, entity_id: int) -> Optional[E]:
        with self._storage.transaction() as conn:
            return self._fetch(conn, entity_id)

    def iterate(self) -> Iterator[Tuple[int, E]]:
        # Rows are read when iterate() is called; later writes never show up
        # in the returned iterator.
        with self._storage.transaction() as conn:
            rows = conn.execute(
                "SELECT id, payload FROM entities WHERE partition = ? ORDER BY id",
                (self._partition,),
            ).fetchall()
        return ((int(row["id"]), self._model.model_validate_json(row["payload"])) for row in rows)

    def __len__(self) -> int:
        with self._storage.transaction() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS total FROM entities WHERE partition = ?",
                (self._partition,),
            ).fetchone()
        return int(row["total"])


@dataclass
class Storage:
    db_path: str

    def __post_init__(self) -> None:
        self._lock = RLock()
        self._active: Optional[sqlite3.Connection] = None
        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        self._init_db()
        self.ids = IdAllocator(self)
        self.providers: EntityStore[ServiceProvider] = EntityStore(self, PROVIDERS_PARTITION, ServiceProvider)
        self.bookings: EntityStore[Booking] = EntityStore(self, BOOKINGS_PARTITION, Booking)
        self.clients: EntityStore[Client] = EntityStore(self, CLIENTS_PARTITION, Client)
        logger.info("Entity storage ready at %s", self.db_path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS counters (
                        cell INTEGER PRIMARY KEY,
                        value INTEGER NOT NULL
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS entities (
                        partition INTEGER NOT NULL,
                        id INTEGER NOT NULL,
                        payload TEXT NOT NULL,
                        PRIMARY KEY (partition, id)
                    )
                    """
                )
                conn.commit()
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block against one connection under the storage lock.

        Nested calls from the same thread reuse the outer connection, so a
        domain operation can wrap several store calls and have them commit
        or roll back together.
        """
        with self._lock:
            if self._active is not None:
                yield self._active
                return
            conn = self._connect()
            self._active = conn
            try:
                with conn:
                    conn.execute("BEGIN IMMEDIATE")
                    yield conn
            finally:
                self._active = None
                conn.close()
