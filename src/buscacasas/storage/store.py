"""SQLite-backed listing store.

Listings are keyed by ``(source, source_id)``; ``url`` is unique too.
Rows are never deleted: listings that disappear from a source are marked
inactive instead.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from ..config import config
from ..models.property import Listing, PropertyQuery, Source

logger = logging.getLogger(__name__)

# Columns written on every upsert, in table order (scraped_at is handled apart)
MUTABLE_COLUMNS = (
    "url",
    "title",
    "description",
    "property_type",
    "department",
    "neighborhood",
    "address",
    "price",
    "currency",
    "price_per_area",
    "bedrooms",
    "bathrooms",
    "total_area",
    "built_area",
    "garages",
    "has_balcony",
    "has_barbecue",
    "has_doorman",
    "has_elevator",
    "has_pool",
    "has_gym",
    "images",
    "thumbnail_url",
    "contact_phone",
    "contact_email",
    "real_estate_agency",
    "published_at",
)

_BOOL_COLUMNS = {
    "has_balcony",
    "has_barbecue",
    "has_doorman",
    "has_elevator",
    "has_pool",
    "has_gym",
}


class StoreIOError(Exception):
    """Raised when the database cannot be read or written."""


class ListingValidationError(Exception):
    """Raised when a listing violates a schema or store constraint.

    Attributes:
        identity: Listing id (or URL/title when no id could be derived)
        problems: Human readable list of violations
    """

    def __init__(self, identity: str, problems: list[str]):
        self.identity = identity
        self.problems = problems
        super().__init__(f"{identity}: {'; '.join(problems)}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(column: str, value):
    if value is None:
        return None
    if column == "images":
        return json.dumps(value)
    if column in _BOOL_COLUMNS:
        return int(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return value


class ListingStore:
    """SQLite store for normalized listings.

    Example:
        store = ListingStore(Path("data/buscacasas.db"))
        action = store.upsert(listing)          # "inserted" or "updated"
        rows = store.query(PropertyQuery(department="Montevideo"), limit=10)
        print(store.stats())
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the store, creating the database file if needed.

        Args:
            db_path: SQLite file (defaults to settings.database_path)
            clock: Source of "now" for lifecycle timestamps
        """
        self.db_path = Path(db_path) if db_path else config.database_path
        self._clock = clock
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreIOError(f"Cannot create {self.db_path.parent}: {e}") from e
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """One connection per operation, committed on success."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StoreIOError(f"Cannot open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise StoreIOError(f"Database error on {self.db_path}: {e}") from e
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS listings (
                    id TEXT PRIMARY KEY,
                    source TEXT NOT NULL,
                    source_id TEXT NOT NULL,
                    url TEXT NOT NULL UNIQUE,

                    title TEXT NOT NULL,
                    description TEXT,
                    property_type TEXT NOT NULL,

                    department TEXT NOT NULL,
                    neighborhood TEXT,
                    address TEXT,

                    price REAL,
                    currency TEXT NOT NULL,
                    price_per_area REAL,

                    bedrooms INTEGER,
                    bathrooms INTEGER,
                    total_area REAL,
                    built_area REAL,
                    garages INTEGER,

                    has_balcony INTEGER,
                    has_barbecue INTEGER,
                    has_doorman INTEGER,
                    has_elevator INTEGER,
                    has_pool INTEGER,
                    has_gym INTEGER,

                    images TEXT NOT NULL DEFAULT '[]',
                    thumbnail_url TEXT,

                    contact_phone TEXT,
                    contact_email TEXT,
                    real_estate_agency TEXT,

                    published_at TEXT,
                    scraped_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,

                    UNIQUE(source, source_id)
                )
            """)
            for column in (
                "department",
                "neighborhood",
                "price",
                "property_type",
                "bedrooms",
                "source",
                "is_active",
                "scraped_at",
            ):
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_listings_{column} ON listings({column})"
                )

    def _row_to_listing(self, row: sqlite3.Row) -> Listing:
        data = dict(row)
        data["images"] = json.loads(data["images"] or "[]")
        for column in _BOOL_COLUMNS:
            if data[column] is not None:
                data[column] = bool(data[column])
        data["is_active"] = bool(data["is_active"])
        return Listing(**data)

    def upsert(self, listing: Listing) -> str:
        """Insert a new listing or refresh the stored one.

        New listings get ``scraped_at = updated_at = now``. Existing ones
        keep their first-seen ``scraped_at``, get every mutable field
        replaced, are reactivated, and get a strictly later ``updated_at``.

        Returns:
            "inserted" or "updated"

        Raises:
            ListingValidationError: If the URL already belongs to another listing
            StoreIOError: On database failure
        """
        now = self._clock()
        with self._connect() as conn:
            owner = conn.execute(
                "SELECT id FROM listings WHERE url = ? AND NOT (source = ? AND source_id = ?)",
                (listing.url, listing.source.value, listing.source_id),
            ).fetchone()
            if owner:
                raise ListingValidationError(
                    listing.id, [f"url already stored for listing {owner['id']}"]
                )

            existing = conn.execute(
                "SELECT updated_at FROM listings WHERE source = ? AND source_id = ?",
                (listing.source.value, listing.source_id),
            ).fetchone()
            values = [_to_db(column, getattr(listing, column)) for column in MUTABLE_COLUMNS]

            if existing:
                previous = datetime.fromisoformat(existing["updated_at"])
                if now <= previous:
                    now = previous + timedelta(microseconds=1)
                assignments = ", ".join(f"{column} = ?" for column in MUTABLE_COLUMNS)
                conn.execute(
                    f"UPDATE listings SET {assignments}, updated_at = ?, is_active = 1 "
                    "WHERE source = ? AND source_id = ?",
                    (*values, now.isoformat(), listing.source.value, listing.source_id),
                )
                return "updated"

            columns = ("id", "source", "source_id", *MUTABLE_COLUMNS, "scraped_at", "updated_at", "is_active")
            placeholders = ", ".join("?" for _ in columns)
            conn.execute(
                f"INSERT INTO listings ({', '.join(columns)}) VALUES ({placeholders})",
                (
                    listing.id,
                    listing.source.value,
                    listing.source_id,
                    *values,
                    now.isoformat(),
                    now.isoformat(),
                    1,
                ),
            )
            return "inserted"

    def get(self, listing_id: str) -> Optional[Listing]:
        """Get a single listing by id (active or not)."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM listings WHERE id = ?", (listing_id,)).fetchone()
        return self._row_to_listing(row) if row else None

    def query(
        self,
        filters: Optional[PropertyQuery] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Listing]:
        """Query active listings, newest first.

        Args:
            filters: Optional filters; unset fields are ignored
            limit: Maximum number of results
            offset: Number of results to skip

        Returns:
            List of matching Listing objects
        """
        filters = filters or PropertyQuery()
        conditions = ["is_active = 1"]
        params: list = []

        exact = {
            "department": filters.department,
            "neighborhood": filters.neighborhood,
            "property_type": filters.property_type.value if filters.property_type else None,
            "currency": filters.currency.value if filters.currency else None,
        }
        for column, value in exact.items():
            if value is not None:
                conditions.append(f"{column} = ?")
                params.append(value)

        ranges = (
            ("price >= ?", filters.min_price),
            ("price <= ?", filters.max_price),
            ("bedrooms >= ?", filters.min_bedrooms),
            ("bedrooms <= ?", filters.max_bedrooms),
            ("bathrooms >= ?", filters.min_bathrooms),
            ("total_area >= ?", filters.min_area),
            ("total_area <= ?", filters.max_area),
        )
        for condition, value in ranges:
            if value is not None:
                conditions.append(condition)
                params.append(value)

        where_clause = " AND ".join(conditions)
        sql = (
            f"SELECT * FROM listings WHERE {where_clause} "
            "ORDER BY scraped_at DESC, id LIMIT ? OFFSET ?"
        )
        params.extend([limit, offset])

        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_listing(row) for row in rows]

    def count(self, source: Optional[Source] = None, include_inactive: bool = False) -> int:
        """Count stored listings."""
        conditions = [] if include_inactive else ["is_active = 1"]
        params: list = []
        if source:
            conditions.append("source = ?")
            params.append(source.value)
        where_clause = " AND ".join(conditions) if conditions else "1=1"
        with self._connect() as conn:
            return conn.execute(
                f"SELECT COUNT(*) FROM listings WHERE {where_clause}", params
            ).fetchone()[0]

    def stats(self) -> dict:
        """Active listing counts: total, per source and per department."""
        with self._connect() as conn:
            total = conn.execute(
                "SELECT COUNT(*) FROM listings WHERE is_active = 1"
            ).fetchone()[0]
            by_source = {
                row[0]: row[1]
                for row in conn.execute(
                    "SELECT source, COUNT(*) FROM listings WHERE is_active = 1 GROUP BY source"
                )
            }
            by_department = {
                row[0]: row[1]
                for row in conn.execute(
                    "SELECT department, COUNT(*) AS n FROM listings WHERE is_active = 1 "
                    "GROUP BY department ORDER BY n DESC, department"
                )
            }
        return {
            "total": total,
            "by_source": by_source,
            "by_department": by_department,
        }

    def mark_inactive(self, listing_id: str) -> bool:
        """Soft-delete one listing. Returns False if it does not exist."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE listings SET is_active = 0, updated_at = ? WHERE id = ?",
                (self._clock().isoformat(), listing_id),
            )
            return cursor.rowcount > 0

    def deactivate_missing(self, source: Source, seen_source_ids: Iterable[str]) -> int:
        """Soft-delete active listings of ``source`` that were not seen.

        Only meaningful after a run that walked the source's whole result
        set; callers decide when that is the case.

        Returns:
            Number of listings deactivated
        """
        seen = set(seen_source_ids)
        now = self._clock().isoformat()
        with self._connect() as conn:
            active = conn.execute(
                "SELECT source_id FROM listings WHERE source = ? AND is_active = 1",
                (source.value,),
            ).fetchall()
            missing = [row["source_id"] for row in active if row["source_id"] not in seen]
            conn.executemany(
                "UPDATE listings SET is_active = 0, updated_at = ? WHERE source = ? AND source_id = ?",
                [(now, source.value, source_id) for source_id in missing],
            )
        if missing:
            logger.info(f"Deactivated {len(missing)} {source.value} listings no longer listed")
        return len(missing)
