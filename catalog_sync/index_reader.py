"""Catalog index import into the metadata ledger.

The master index lists every catalog item as a ``<file>`` element whose
attributes describe the item. Index files run to hundreds of megabytes,
so they are streamed and each element is discarded once it is stored.
"""

import logging
import sqlite3
import xml.etree.ElementTree as ET
from datetime import date
from pathlib import Path
from typing import IO, Dict, Iterator, List, Optional, Union

from catalog_sync.config import CATALOG_DIR, DB_PATH, FULL_INDEX_NAME, SUPPLIER_ID
from catalog_sync.db import init_db, upsert_metadata
from catalog_sync.logging_config import get_logger, log_sync_event
from catalog_sync.models import FAILED, MetadataRecord, Outcome

__all__ = [
    "index_path_for",
    "iter_index_entries",
    "record_from_entry",
    "import_catalog",
]

INDEX_ENTRY_TAG = "file"

IndexSource = Union[str, Path, IO[bytes]]


def index_path_for(
    full: bool = False,
    day: Optional[date] = None,
    catalog_dir: Path = CATALOG_DIR,
) -> Path:
    """Local path of the full index or of the daily index for ``day``."""
    if full:
        return Path(catalog_dir) / FULL_INDEX_NAME
    day = day or date.today()
    return Path(catalog_dir) / f"{day.isoformat()}-index.xml"


def iter_index_entries(source: IndexSource, supplier_id: str = SUPPLIER_ID) -> Iterator[Dict[str, str]]:
    """Yield the attributes of every index entry belonging to ``supplier_id``."""
    open_elements: List[ET.Element] = []
    for event, elem in ET.iterparse(source, events=("start", "end")):
        if event == "start":
            open_elements.append(elem)
            continue

        open_elements.pop()
        if elem.tag != INDEX_ENTRY_TAG:
            continue

        if elem.get("Supplier_id") == supplier_id:
            yield dict(elem.attrib)

        # Detach processed entries to keep memory flat
        if open_elements:
            open_elements[-1].remove(elem)


def record_from_entry(entry: Dict[str, str]) -> MetadataRecord:
    """Map index entry attributes onto a ledger record."""
    return MetadataRecord(
        catalog_item_id=entry.get("Product_ID", ""),
        path=entry.get("path"),
        updated_at_source=entry.get("Updated"),
        quality=entry.get("Quality"),
        supplier_id=entry.get("Supplier_id"),
        article_number=entry.get("Prod_ID"),
        category_id=entry.get("Catid"),
        on_market=entry.get("On_Market"),
        model_name=entry.get("Model_Name") or None,
        product_view=entry.get("Product_View"),
    )


def import_catalog(
    source: IndexSource,
    db_path: str = DB_PATH,
    supplier_id: str = SUPPLIER_ID,
    logger: Optional[logging.Logger] = None,
) -> List[Outcome]:
    """Upsert a ledger record for every index entry of the configured supplier.

    A failing entry is logged and skipped; the import carries on.

    Args:
        source: Path or binary file object of the index document
        db_path: Path to the SQLite database
        supplier_id: Supplier id entries must carry to be imported
        logger: Logger to report to (default: ``catalog_sync.index``)

    Returns:
        One Outcome per imported entry, plus one for a broken document
    """
    logger = logger or get_logger("index")
    init_db(db_path)

    outcomes: List[Outcome] = []
    logger.info(f"Importing catalog index {source} (supplier {supplier_id})")

    try:
        for entry in iter_index_entries(source, supplier_id):
            record = record_from_entry(entry)
            if not record.catalog_item_id:
                logger.error(f"Metadatum {record.article_number} has no item id, skipped")
                outcomes.append(Outcome(
                    key=record.article_number or "?",
                    operation="import_index",
                    status=FAILED,
                    reason="missing_item_id",
                ))
                continue

            try:
                upsert_metadata(db_path, record)
                outcomes.append(Outcome(key=record.catalog_item_id, operation="import_index"))
            except sqlite3.Error as e:
                logger.error(
                    f"Metadatum {record.article_number} ({record.catalog_item_id}) could not be saved: {e}"
                )
                outcomes.append(Outcome(
                    key=record.catalog_item_id,
                    operation="import_index",
                    status=FAILED,
                    reason="persistence_error",
                    detail=str(e),
                ))
    except ET.ParseError as e:
        logger.error(f"Catalog index {source} is not well-formed: {e}")
        outcomes.append(Outcome(
            key=str(source),
            operation="import_index",
            status=FAILED,
            reason="parse_error",
            detail=str(e),
        ))

    failed = sum(1 for o in outcomes if not o.ok)
    log_sync_event("index_complete", {
        "message": f"Catalog index imported: {len(outcomes) - failed} records, {failed} failures",
        "source": str(source),
        "supplier_id": supplier_id,
        "imported": len(outcomes) - failed,
        "failed": failed,
    }, logger=logger)
    return outcomes
