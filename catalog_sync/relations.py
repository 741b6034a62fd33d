"""Product relations derived from the related-items section of a detail document."""

import logging
import sqlite3
from pathlib import Path
from typing import List, Optional, Tuple

from catalog_sync.config import DB_PATH, XML_DIR
from catalog_sync.db import get_metadata_by_item_ids, replace_product_relations
from catalog_sync.detail_parser import DocumentUnavailable, load_document
from catalog_sync.linker import linked_product
from catalog_sync.logging_config import get_logger
from catalog_sync.models import FAILED, MetadataRecord, Outcome, Product

__all__ = ["classify_relations", "update_product_relations"]


def classify_relations(
    db_path: str,
    category_id: Optional[str],
    related_item_ids: List[str],
) -> Tuple[List[int], List[int]]:
    """Split related items into (same-category product ids, cross-category product ids).

    Items that are unknown to the ledger or not linked to a product are dropped.
    """
    same_category: List[int] = []
    cross_category: List[int] = []
    for related in get_metadata_by_item_ids(db_path, related_item_ids):
        related_product_id = related.product_id or 0
        if related_product_id <= 0:
            continue
        if related.category_id == category_id:
            same_category.append(related_product_id)
        else:
            cross_category.append(related_product_id)
    return same_category, cross_category


def update_product_relations(
    record: MetadataRecord,
    db_path: str = DB_PATH,
    product: Optional[Product] = None,
    xml_dir: Path = XML_DIR,
    logger: Optional[logging.Logger] = None,
) -> Outcome:
    """Replace the product and supply relations of a product.

    Related items of the same category as ``record`` become product
    relations, all others supply relations.
    """
    logger = logger or get_logger("relations")
    key = record.catalog_item_id

    try:
        document = load_document(key, xml_dir)
    except DocumentUnavailable as e:
        logger.error(str(e))
        return Outcome(key=key, operation="update_relations", status=FAILED,
                       reason="document_unavailable", detail=str(e))

    product = linked_product(db_path, record, product)
    if product is None:
        logger.error(f"No product linked to metadatum {key}")
        return Outcome(key=key, operation="update_relations", status=FAILED, reason="no_product")

    try:
        same_category, cross_category = classify_relations(
            db_path, record.category_id, document.related_item_ids
        )
        replace_product_relations(db_path, product.id, same_category, cross_category)
    except sqlite3.Error as e:
        logger.error(f"Product {product.id} could not be updated: {e}")
        return Outcome(key=key, operation="update_relations", status=FAILED,
                       reason="persistence_error", detail=str(e))

    return Outcome(key=key, operation="update_relations",
                   detail=f"{len(same_category)} product, {len(cross_category)} supply relations")
