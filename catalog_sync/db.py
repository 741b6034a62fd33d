"""SQLite database schema and helpers for the catalog ledger and attribute schema."""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, List, Optional

from catalog_sync.config import DB_PATH
from catalog_sync.models import MetadataRecord, Product, Property, PropertyGroup, Value

__all__ = [
    "COUNTABLE_TABLES",
    "get_connection",
    "init_db",
    "upsert_metadata",
    "get_metadata",
    "get_metadata_by_id",
    "get_metadata_by_item_ids",
    "get_metadata_by_article_number",
    "get_metadata_for_product",
    "get_linked_metadata",
    "set_metadata_product",
    "upsert_product",
    "get_product",
    "get_products",
    "update_product_fields",
    "set_product_photo",
    "get_property_group",
    "create_property_group",
    "get_property",
    "create_property",
    "delete_product_values",
    "find_value",
    "save_value",
    "get_product_values",
    "replace_product_relations",
    "get_product_relations",
    "get_supply_relations",
    "get_table_count",
]

# Columns of the products table the sync is allowed to write
PRODUCT_TEXT_COLUMNS = frozenset({
    "description_de",
    "description_en",
    "long_description_de",
    "long_description_en",
    "warranty_de",
    "warranty_en",
})

COUNTABLE_TABLES = frozenset({
    "metadata",
    "products",
    "property_groups",
    "properties",
    "property_values",
    "product_relations",
    "supply_relations",
})

SQLITE_TIMESTAMP = "%Y-%m-%d %H:%M:%S"


@contextmanager
def get_connection(db_path: str = DB_PATH) -> Generator[sqlite3.Connection, None, None]:
    """Context manager for database connections.

    Each call opens its own connection, so helpers are safe to call from
    worker threads; the busy timeout covers concurrent writers.
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=30)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: str = DB_PATH) -> None:
    """Initialize the database schema."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()

        # Ledger: one row per catalog item of the index
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS metadata (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                catalog_item_id TEXT UNIQUE NOT NULL,
                path TEXT,
                updated_at_source TEXT,
                quality TEXT,
                supplier_id TEXT,
                article_number TEXT,
                category_id TEXT,
                on_market TEXT,
                model_name TEXT,
                product_view TEXT,
                product_id INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # Host products (owned by the surrounding application)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS products (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                number TEXT UNIQUE,
                article_number TEXT,
                title TEXT,
                description_de TEXT,
                description_en TEXT,
                long_description_de TEXT,
                long_description_en TEXT,
                warranty_de TEXT,
                warranty_en TEXT,
                photo_file_name TEXT,
                photo_path TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS property_groups (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                icecat_id TEXT UNIQUE NOT NULL,
                name_de TEXT,
                name_en TEXT,
                position INTEGER
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS properties (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                icecat_id TEXT UNIQUE NOT NULL,
                name_de TEXT,
                name_en TEXT,
                position INTEGER,
                datatype TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS property_values (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                property_group_id INTEGER,
                property_id INTEGER NOT NULL,
                product_id INTEGER NOT NULL,
                state TEXT NOT NULL,
                flag INTEGER,
                amount REAL,
                title_de TEXT,
                title_en TEXT,
                unit_de TEXT,
                unit_en TEXT,
                FOREIGN KEY (property_group_id) REFERENCES property_groups(id),
                FOREIGN KEY (property_id) REFERENCES properties(id),
                FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS product_relations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                product_id INTEGER NOT NULL,
                related_product_id INTEGER NOT NULL,
                FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS supply_relations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                product_id INTEGER NOT NULL,
                supply_id INTEGER NOT NULL,
                FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_metadata_article_number ON metadata(article_number)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_metadata_product_id ON metadata(product_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_products_article_number ON products(article_number)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_values_product_id ON property_values(product_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_product_relations_product_id ON product_relations(product_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_supply_relations_product_id ON supply_relations(product_id)")

        conn.commit()


# =============================================================================
# Metadata ledger
# =============================================================================


def upsert_metadata(db_path: str, record: MetadataRecord) -> int:
    """Find-or-create a ledger row by catalog item id and overwrite its fields."""
    fields = (
        record.path,
        record.updated_at_source,
        record.quality,
        record.supplier_id,
        record.article_number,
        record.category_id,
        record.on_market,
        record.model_name,
        record.product_view,
    )

    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT id FROM metadata WHERE catalog_item_id = ?", (record.catalog_item_id,)
        )
        existing = cursor.fetchone()

        if existing:
            cursor.execute("""
                UPDATE metadata SET
                    path = ?,
                    updated_at_source = ?,
                    quality = ?,
                    supplier_id = ?,
                    article_number = ?,
                    category_id = ?,
                    on_market = ?,
                    model_name = ?,
                    product_view = ?,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
            """, fields + (existing["id"],))
            metadata_id = existing["id"]
        else:
            cursor.execute("""
                INSERT INTO metadata (catalog_item_id, path, updated_at_source, quality,
                                      supplier_id, article_number, category_id, on_market,
                                      model_name, product_view)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (record.catalog_item_id,) + fields)
            metadata_id = cursor.lastrowid

        conn.commit()
        return metadata_id


def get_metadata(db_path: str, catalog_item_id: str) -> Optional[MetadataRecord]:
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM metadata WHERE catalog_item_id = ?", (str(catalog_item_id),))
        row = cursor.fetchone()
        return MetadataRecord.from_row(row) if row else None


def get_metadata_by_id(db_path: str, metadata_id: int) -> Optional[MetadataRecord]:
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM metadata WHERE id = ?", (metadata_id,))
        row = cursor.fetchone()
        return MetadataRecord.from_row(row) if row else None


def get_metadata_by_item_ids(db_path: str, catalog_item_ids: Iterable[str]) -> List[MetadataRecord]:
    ids = sorted({str(i) for i in catalog_item_ids})
    if not ids:
        return []

    placeholders = ", ".join("?" for _ in ids)
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(
            f"SELECT * FROM metadata WHERE catalog_item_id IN ({placeholders}) ORDER BY id", ids
        )
        return [MetadataRecord.from_row(row) for row in cursor.fetchall()]


def get_metadata_by_article_number(db_path: str, article_number: str) -> List[MetadataRecord]:
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM metadata WHERE article_number = ? ORDER BY id", (article_number,)
        )
        return [MetadataRecord.from_row(row) for row in cursor.fetchall()]


def get_metadata_for_product(db_path: str, product_id: int) -> List[MetadataRecord]:
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM metadata WHERE product_id = ? ORDER BY id", (product_id,))
        return [MetadataRecord.from_row(row) for row in cursor.fetchall()]


def get_linked_metadata(
    db_path: str,
    updated_since: Optional[datetime] = None,
) -> List[MetadataRecord]:
    """Ledger rows linked to a product, optionally only those updated after a UTC time."""
    query = "SELECT * FROM metadata WHERE product_id IS NOT NULL"
    params: List[Any] = []
    if updated_since is not None:
        query += " AND updated_at > ?"
        params.append(updated_since.strftime(SQLITE_TIMESTAMP))
    query += " ORDER BY id"

    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(query, params)
        return [MetadataRecord.from_row(row) for row in cursor.fetchall()]


def set_metadata_product(db_path: str, metadata_id: int, product_id: int) -> None:
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(
            "UPDATE metadata SET product_id = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (product_id, metadata_id),
        )
        conn.commit()


# =============================================================================
# Products
# =============================================================================


def upsert_product(
    db_path: str,
    number: str,
    article_number: Optional[str] = None,
    title: Optional[str] = None,
) -> int:
    """Insert or update a host product by its number, returning its ID."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT id FROM products WHERE number = ?", (number,))
        existing = cursor.fetchone()

        if existing:
            cursor.execute("""
                UPDATE products SET article_number = ?, title = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
            """, (article_number, title, existing["id"]))
            product_id = existing["id"]
        else:
            cursor.execute(
                "INSERT INTO products (number, article_number, title) VALUES (?, ?, ?)",
                (number, article_number, title),
            )
            product_id = cursor.lastrowid

        conn.commit()
        return product_id


def get_product(db_path: str, product_id: int) -> Optional[Product]:
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM products WHERE id = ?", (product_id,))
        row = cursor.fetchone()
        return Product.from_row(row) if row else None


def get_products(db_path: str, without_metadata: bool = False) -> List[Product]:
    """All products, or only those no ledger row is linked to yet."""
    query = "SELECT * FROM products"
    if without_metadata:
        query += " WHERE id NOT IN (SELECT product_id FROM metadata WHERE product_id IS NOT NULL)"
    query += " ORDER BY id"

    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(query)
        return [Product.from_row(row) for row in cursor.fetchall()]


def update_product_fields(db_path: str, product_id: int, fields: Dict[str, Optional[str]]) -> None:
    """Update description/warranty columns of a product."""
    invalid = set(fields) - PRODUCT_TEXT_COLUMNS
    if invalid:
        raise ValueError(f"Invalid product columns: {sorted(invalid)}")
    if not fields:
        return

    set_clause = ", ".join(f"{k} = ?" for k in fields)
    values = list(fields.values()) + [product_id]
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(
            f"UPDATE products SET {set_clause}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            values,
        )
        conn.commit()


def set_product_photo(db_path: str, product_id: int, file_name: str, path: str) -> None:
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            UPDATE products SET photo_file_name = ?, photo_path = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
        """, (file_name, path, product_id))
        conn.commit()


# =============================================================================
# Attribute schema
# =============================================================================


def get_property_group(db_path: str, icecat_id: str) -> Optional[PropertyGroup]:
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM property_groups WHERE icecat_id = ?", (str(icecat_id),))
        row = cursor.fetchone()
        if not row:
            return None
        return PropertyGroup(
            id=row["id"],
            icecat_id=row["icecat_id"],
            name_de=row["name_de"],
            name_en=row["name_en"],
            position=row["position"],
        )


def create_property_group(db_path: str, group: PropertyGroup) -> int:
    """Insert a group unless its external id exists; returns the stored row id.

    A concurrent writer that got there first wins, its row is kept.
    """
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT OR IGNORE INTO property_groups (icecat_id, name_de, name_en, position)
            VALUES (?, ?, ?, ?)
        """, (str(group.icecat_id), group.name_de, group.name_en, group.position))
        conn.commit()
        cursor.execute("SELECT id FROM property_groups WHERE icecat_id = ?", (str(group.icecat_id),))
        group.id = cursor.fetchone()["id"]
        return group.id


def get_property(db_path: str, icecat_id: str) -> Optional[Property]:
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM properties WHERE icecat_id = ?", (str(icecat_id),))
        row = cursor.fetchone()
        if not row:
            return None
        return Property(
            id=row["id"],
            icecat_id=row["icecat_id"],
            datatype=row["datatype"],
            name_de=row["name_de"],
            name_en=row["name_en"],
            position=row["position"],
        )


def create_property(db_path: str, prop: Property) -> int:
    """Insert a property unless its external id exists; returns the stored row id."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT OR IGNORE INTO properties (icecat_id, name_de, name_en, position, datatype)
            VALUES (?, ?, ?, ?, ?)
        """, (str(prop.icecat_id), prop.name_de, prop.name_en, prop.position, prop.datatype))
        conn.commit()
        cursor.execute("SELECT id FROM properties WHERE icecat_id = ?", (str(prop.icecat_id),))
        prop.id = cursor.fetchone()["id"]
        return prop.id


def _value_from_row(row: sqlite3.Row) -> Value:
    return Value(
        id=row["id"],
        property_group_id=row["property_group_id"],
        property_id=row["property_id"],
        product_id=row["product_id"],
        state=row["state"],
        flag=None if row["flag"] is None else bool(row["flag"]),
        amount=row["amount"],
        title_de=row["title_de"],
        title_en=row["title_en"],
        unit_de=row["unit_de"],
        unit_en=row["unit_en"],
    )


def delete_product_values(db_path: str, product_id: int) -> int:
    """Delete every value of a product, returning the number of rows removed."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM property_values WHERE product_id = ?", (product_id,))
        conn.commit()
        return cursor.rowcount


def find_value(
    db_path: str,
    property_group_id: Optional[int],
    property_id: int,
    product_id: int,
    state: str,
) -> Optional[Value]:
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT * FROM property_values
            WHERE property_group_id IS ? AND property_id = ? AND product_id = ? AND state = ?
        """, (property_group_id, property_id, product_id, state))
        row = cursor.fetchone()
        return _value_from_row(row) if row else None


def save_value(db_path: str, value: Value) -> int:
    """Insert a new value or update the payload of an existing one."""
    payload = (
        None if value.flag is None else int(value.flag),
        value.amount,
        value.title_de,
        value.title_en,
        value.unit_de,
        value.unit_en,
    )

    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        if value.id is not None:
            cursor.execute("""
                UPDATE property_values SET
                    flag = ?, amount = ?, title_de = ?, title_en = ?, unit_de = ?, unit_en = ?
                WHERE id = ?
            """, payload + (value.id,))
        else:
            cursor.execute("""
                INSERT INTO property_values (property_group_id, property_id, product_id, state,
                                             flag, amount, title_de, title_en, unit_de, unit_en)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (value.property_group_id, value.property_id, value.product_id, value.state) + payload)
            value.id = cursor.lastrowid
        conn.commit()
        return value.id


def get_product_values(db_path: str, product_id: int) -> List[Value]:
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM property_values WHERE product_id = ? ORDER BY id", (product_id,)
        )
        return [_value_from_row(row) for row in cursor.fetchall()]


# =============================================================================
# Relations
# =============================================================================


def replace_product_relations(
    db_path: str,
    product_id: int,
    related_product_ids: Iterable[int],
    supply_ids: Iterable[int],
) -> None:
    """Drop both relation sets of a product and write the new edges."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM product_relations WHERE product_id = ?", (product_id,))
        cursor.execute("DELETE FROM supply_relations WHERE product_id = ?", (product_id,))
        cursor.executemany(
            "INSERT INTO product_relations (product_id, related_product_id) VALUES (?, ?)",
            [(product_id, related_id) for related_id in related_product_ids],
        )
        cursor.executemany(
            "INSERT INTO supply_relations (product_id, supply_id) VALUES (?, ?)",
            [(product_id, supply_id) for supply_id in supply_ids],
        )
        conn.commit()


def get_product_relations(db_path: str, product_id: int) -> List[int]:
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT related_product_id FROM product_relations WHERE product_id = ? ORDER BY id",
            (product_id,),
        )
        return [row["related_product_id"] for row in cursor.fetchall()]


def get_supply_relations(db_path: str, product_id: int) -> List[int]:
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT supply_id FROM supply_relations WHERE product_id = ? ORDER BY id",
            (product_id,),
        )
        return [row["supply_id"] for row in cursor.fetchall()]


def get_table_count(db_path: str, table_name: str) -> int:
    """Row count of one of the sync tables."""
    # Validate table name against whitelist to prevent SQL injection
    if table_name not in COUNTABLE_TABLES:
        raise ValueError(f"Invalid table name: {table_name}. Must be one of {sorted(COUNTABLE_TABLES)}")

    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(f"SELECT COUNT(*) AS count FROM {table_name}")
        return cursor.fetchone()["count"]
