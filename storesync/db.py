"""SQLite catalog store: schema and typed write/read operations.

Every public operation runs in its own transaction. Callers never issue SQL
directly; they go through CatalogStore.
"""

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import asdict
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, List, Optional, Sequence

from storesync.config import DB_PATH
from storesync.models import (
    HistoryRecord,
    LinkedProductRecord,
    OptionRecord,
    ProductRecord,
    SpecRecord,
    TagRecord,
    VariantRecord,
)

__all__ = [
    "DEFAULT_DB_PATH",
    "CHILD_TABLES",
    "ALL_TABLES",
    "get_connection",
    "init_db",
    "CatalogStore",
]

DEFAULT_DB_PATH = DB_PATH

# Tables whose rows are replaced per product on every sync
CHILD_TABLES = frozenset({"product_tags", "product_options", "product_specs", "linked_products"})

ALL_TABLES = (
    "products",
    "product_variants",
    "product_tags",
    "product_options",
    "product_specs",
    "linked_products",
    "variant_history",
)

# SQLite caps the number of bound parameters per statement
_IN_CHUNK = 500

sqlite3.register_adapter(Decimal, float)

PRODUCT_COLUMNS = (
    "id", "name", "title", "short_description", "slug", "category_slug",
    "subcategory_id", "collection_slug", "image_url", "url", "status",
    "min_price", "max_price", "currency", "has_discount", "variant_count",
    "last_updated",
)

VARIANT_COLUMNS = (
    "product_id", "variant_id", "sku", "display_name", "current_price",
    "regular_price", "discount_percent", "currency", "in_stock", "status",
    "is_visible", "has_ui_care", "last_updated",
)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS products (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        title TEXT,
        short_description TEXT,
        slug TEXT NOT NULL,
        category_slug TEXT NOT NULL,
        subcategory_id TEXT,
        collection_slug TEXT,
        image_url TEXT,
        url TEXT NOT NULL,
        status TEXT NOT NULL,
        min_price REAL,
        max_price REAL,
        currency TEXT NOT NULL,
        has_discount INTEGER NOT NULL DEFAULT 0,
        variant_count INTEGER NOT NULL DEFAULT 0,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        last_updated TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS product_variants (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        product_id TEXT NOT NULL,
        variant_id TEXT NOT NULL,
        sku TEXT UNIQUE NOT NULL,
        display_name TEXT,
        current_price REAL,
        regular_price REAL,
        discount_percent INTEGER,
        currency TEXT NOT NULL,
        in_stock INTEGER NOT NULL DEFAULT 0,
        status TEXT NOT NULL,
        is_visible INTEGER NOT NULL DEFAULT 0,
        has_ui_care INTEGER NOT NULL DEFAULT 0,
        last_updated TEXT NOT NULL,
        FOREIGN KEY (product_id) REFERENCES products(id)
    );

    CREATE TABLE IF NOT EXISTS product_tags (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        product_id TEXT NOT NULL,
        tag_name TEXT NOT NULL,
        tag_type TEXT NOT NULL,
        tag_value TEXT NOT NULL,
        UNIQUE (product_id, tag_name),
        FOREIGN KEY (product_id) REFERENCES products(id)
    );

    CREATE TABLE IF NOT EXISTS product_options (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        product_id TEXT NOT NULL,
        option_title TEXT NOT NULL,
        option_values TEXT NOT NULL,
        UNIQUE (product_id, option_title),
        FOREIGN KEY (product_id) REFERENCES products(id)
    );

    CREATE TABLE IF NOT EXISTS product_specs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        product_id TEXT NOT NULL,
        spec_section TEXT NOT NULL,
        spec_label TEXT NOT NULL,
        spec_value TEXT,
        spec_icon TEXT,
        spec_note TEXT,
        UNIQUE (product_id, spec_section, spec_label),
        FOREIGN KEY (product_id) REFERENCES products(id)
    );

    CREATE TABLE IF NOT EXISTS linked_products (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        product_id TEXT NOT NULL,
        linked_product_id TEXT NOT NULL,
        link_type TEXT NOT NULL,
        UNIQUE (product_id, linked_product_id, link_type),
        FOREIGN KEY (product_id) REFERENCES products(id),
        FOREIGN KEY (linked_product_id) REFERENCES products(id)
    );

    -- Append-only: rows are never updated or deleted
    CREATE TABLE IF NOT EXISTS variant_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        variant_id INTEGER NOT NULL,
        sku TEXT NOT NULL,
        price REAL,
        regular_price REAL,
        discount_percent INTEGER,
        in_stock INTEGER NOT NULL,
        status TEXT NOT NULL,
        recorded_at TEXT NOT NULL,
        FOREIGN KEY (variant_id) REFERENCES product_variants(id)
    );

    CREATE INDEX IF NOT EXISTS idx_products_category ON products(category_slug);
    CREATE INDEX IF NOT EXISTS idx_variants_product_id ON product_variants(product_id);
    CREATE INDEX IF NOT EXISTS idx_tags_product_id ON product_tags(product_id);
    CREATE INDEX IF NOT EXISTS idx_options_product_id ON product_options(product_id);
    CREATE INDEX IF NOT EXISTS idx_specs_product_id ON product_specs(product_id);
    CREATE INDEX IF NOT EXISTS idx_linked_product_id ON linked_products(product_id);
    CREATE INDEX IF NOT EXISTS idx_history_sku_recorded ON variant_history(sku, recorded_at);
"""


@contextmanager
def get_connection(db_path: str = DEFAULT_DB_PATH) -> Generator[sqlite3.Connection, None, None]:
    """Context manager for a database transaction.

    Commits when the block succeeds and rolls back when it raises.
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database schema."""
    with get_connection(db_path) as conn:
        conn.executescript(SCHEMA)


def _chunks(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _check_child_table(table: str) -> None:
    # Table names cannot be bound as parameters; only allow known tables
    if table not in CHILD_TABLES:
        raise ValueError(f"Invalid table name: {table}. Must be one of {sorted(CHILD_TABLES)}")


def _child_row(record: Any) -> Dict[str, Any]:
    row = asdict(record)
    if isinstance(record, OptionRecord):
        row["option_values"] = json.dumps(record.option_values, ensure_ascii=False)
    return row


class CatalogStore:
    """Typed access to the catalog tables.

    Args:
        db_path: SQLite database file
        init: Create the schema if missing
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, init: bool = True) -> None:
        self.db_path = db_path
        if init:
            init_db(db_path)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_products(self, products: Sequence[ProductRecord]) -> int:
        """Insert or fully replace products by id. ``created_at`` is kept."""
        if not products:
            return 0
        cols = ", ".join(PRODUCT_COLUMNS)
        placeholders = ", ".join(f":{c}" for c in PRODUCT_COLUMNS)
        updates = ", ".join(f"{c} = excluded.{c}" for c in PRODUCT_COLUMNS if c != "id")
        sql = (
            f"INSERT INTO products ({cols}) VALUES ({placeholders}) "
            f"ON CONFLICT(id) DO UPDATE SET {updates}"
        )
        with get_connection(self.db_path) as conn:
            conn.executemany(sql, [asdict(p) for p in products])
        return len(products)

    def upsert_variants(self, variants: Sequence[VariantRecord]) -> int:
        """Insert or fully replace variants by SKU. The durable id is kept."""
        if not variants:
            return 0
        cols = ", ".join(VARIANT_COLUMNS)
        placeholders = ", ".join(f":{c}" for c in VARIANT_COLUMNS)
        updates = ", ".join(f"{c} = excluded.{c}" for c in VARIANT_COLUMNS if c != "sku")
        sql = (
            f"INSERT INTO product_variants ({cols}) VALUES ({placeholders}) "
            f"ON CONFLICT(sku) DO UPDATE SET {updates}"
        )
        with get_connection(self.db_path) as conn:
            conn.executemany(sql, [asdict(v) for v in variants])
        return len(variants)

    def insert_history(self, history: Sequence[HistoryRecord]) -> int:
        if not history:
            return 0
        with get_connection(self.db_path) as conn:
            conn.executemany("""
                INSERT INTO variant_history
                    (variant_id, sku, price, regular_price, discount_percent,
                     in_stock, status, recorded_at)
                VALUES
                    (:variant_id, :sku, :price, :regular_price, :discount_percent,
                     :in_stock, :status, :recorded_at)
            """, [asdict(h) for h in history])
        return len(history)

    def replace_children(
        self,
        table: str,
        product_ids: Sequence[str],
        rows: Sequence[Any],
    ) -> int:
        """Delete all rows of ``table`` for ``product_ids`` and insert ``rows``.

        Both happen in one transaction, so a failed insert leaves the previous
        child rows in place.
        """
        _check_child_table(table)
        if not product_ids and not rows:
            return 0

        dict_rows = [_child_row(r) for r in rows]
        with get_connection(self.db_path) as conn:
            for chunk in _chunks(list(product_ids), _IN_CHUNK):
                placeholders = ", ".join("?" for _ in chunk)
                conn.execute(
                    f"DELETE FROM {table} WHERE product_id IN ({placeholders})", list(chunk)
                )
            if dict_rows:
                cols = list(dict_rows[0].keys())
                conn.executemany(
                    f"INSERT INTO {table} ({', '.join(cols)}) "
                    f"VALUES ({', '.join(':' + c for c in cols)})",
                    dict_rows,
                )
        return len(dict_rows)

    def replace_tags(self, product_ids: Sequence[str], tags: Sequence[TagRecord]) -> int:
        return self.replace_children("product_tags", product_ids, tags)

    def replace_options(self, product_ids: Sequence[str], options: Sequence[OptionRecord]) -> int:
        return self.replace_children("product_options", product_ids, options)

    def replace_specs(self, product_ids: Sequence[str], specs: Sequence[SpecRecord]) -> int:
        return self.replace_children("product_specs", product_ids, specs)

    def replace_links(
        self, product_ids: Sequence[str], links: Sequence[LinkedProductRecord]
    ) -> int:
        return self.replace_children("linked_products", product_ids, links)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_variant_ids(self, skus: Iterable[str]) -> Dict[str, int]:
        """Map SKUs to their durable variant ids. Unknown SKUs are absent."""
        sku_list = list(dict.fromkeys(skus))
        result: Dict[str, int] = {}
        with get_connection(self.db_path) as conn:
            for chunk in _chunks(sku_list, _IN_CHUNK):
                placeholders = ", ".join("?" for _ in chunk)
                cursor = conn.execute(
                    f"SELECT id, sku FROM product_variants WHERE sku IN ({placeholders})",
                    list(chunk),
                )
                for row in cursor.fetchall():
                    result[row["sku"]] = row["id"]
        return result

    def get_product_ids(self) -> List[str]:
        with get_connection(self.db_path) as conn:
            return [row["id"] for row in conn.execute("SELECT id FROM products")]

    def get_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        with get_connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM products WHERE id = ?", (product_id,)).fetchone()
            return dict(row) if row else None

    def get_variant(self, sku: str) -> Optional[Dict[str, Any]]:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM product_variants WHERE sku = ?", (sku,)
            ).fetchone()
            return dict(row) if row else None

    def get_child_rows(self, table: str, product_id: str) -> List[Dict[str, Any]]:
        """All rows of a child table for one product, in insertion order."""
        _check_child_table(table)
        with get_connection(self.db_path) as conn:
            rows = [
                dict(row)
                for row in conn.execute(
                    f"SELECT * FROM {table} WHERE product_id = ? ORDER BY id", (product_id,)
                )
            ]
        if table == "product_options":
            for row in rows:
                row["option_values"] = json.loads(row["option_values"])
        return rows

    def get_history(self, sku: str) -> List[Dict[str, Any]]:
        """History snapshots for one SKU, oldest first."""
        with get_connection(self.db_path) as conn:
            return [
                dict(row)
                for row in conn.execute(
                    "SELECT * FROM variant_history WHERE sku = ? ORDER BY recorded_at, id",
                    (sku,),
                )
            ]

    def count_rows(self, table: str) -> int:
        if table not in ALL_TABLES:
            raise ValueError(f"Invalid table name: {table}. Must be one of {list(ALL_TABLES)}")
        with get_connection(self.db_path) as conn:
            return conn.execute(f"SELECT COUNT(*) AS count FROM {table}").fetchone()["count"]

    def table_counts(self) -> Dict[str, int]:
        return {table: self.count_rows(table) for table in ALL_TABLES}
