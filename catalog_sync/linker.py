"""Linking of ledger records to host products by article number."""

import logging
import sqlite3
from typing import List, Optional

from catalog_sync.config import DB_PATH
from catalog_sync.db import (
    get_metadata_by_article_number,
    get_product,
    get_products,
    init_db,
    set_metadata_product,
)
from catalog_sync.logging_config import get_logger, log_sync_event
from catalog_sync.models import FAILED, OK, SKIPPED, MetadataRecord, Outcome, Product

__all__ = ["assign_products", "linked_product"]


def assign_products(
    db_path: str = DB_PATH,
    only_missing: bool = True,
    logger: Optional[logging.Logger] = None,
) -> List[Outcome]:
    """Set ``product_id`` on every ledger record matching a product's article number.

    A product may match several records (catalog variants); all of them are
    linked. Products without an article number or without a match yield a
    skipped outcome.

    Args:
        db_path: Path to the SQLite database
        only_missing: Only consider products no record is linked to yet
        logger: Logger to report to (default: ``catalog_sync.linker``)

    Returns:
        One Outcome per linked record or unmatched product
    """
    logger = logger or get_logger("linker")
    init_db(db_path)

    products = get_products(db_path, without_metadata=only_missing)
    logger.info(f"Assigning ledger records to {len(products)} products")

    outcomes: List[Outcome] = []
    for product in products:
        key = product.number or str(product.id)
        if not product.article_number:
            outcomes.append(Outcome(key=key, operation="assign_product", status=SKIPPED,
                                    reason="no_article_number"))
            continue

        records = get_metadata_by_article_number(db_path, product.article_number)
        if not records:
            outcomes.append(Outcome(key=key, operation="assign_product", status=SKIPPED,
                                    reason="no_match"))
            continue

        for record in records:
            try:
                set_metadata_product(db_path, record.id, product.id)
                outcomes.append(Outcome(key=record.catalog_item_id, operation="assign_product",
                                        detail=f"product {product.id}"))
            except sqlite3.Error as e:
                logger.error(f"Product {key} could not be assigned to metadatum {record.id}: {e}")
                outcomes.append(Outcome(key=record.catalog_item_id, operation="assign_product",
                                        status=FAILED, reason="persistence_error", detail=str(e)))

    linked = sum(1 for o in outcomes if o.status == OK)
    log_sync_event("assign_complete", {
        "message": f"Linked {linked} ledger records",
        "products": len(products),
        "linked": linked,
        "only_missing": only_missing,
    }, logger=logger)
    return outcomes


def linked_product(
    db_path: str,
    record: MetadataRecord,
    product: Optional[Product] = None,
) -> Optional[Product]:
    """The product to write for ``record``: ``product`` if given, else the linked one.

    Several products may share one catalog document, so callers can name
    the target explicitly.
    """
    if product is not None:
        return product
    if record.product_id is None:
        return None
    return get_product(db_path, record.product_id)
