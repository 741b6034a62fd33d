"""Rewrites a product's texts and typed attribute values from its detail document.

Property groups and properties are shared schema: they are created the
first time their external id is seen and never changed afterwards, so the
first document decides a group's name and a property's datatype. Values
belong to one product and are rebuilt from scratch on every pass.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Dict, Optional

from catalog_sync.config import DB_PATH, XML_DIR
from catalog_sync.db import (
    create_property,
    create_property_group,
    delete_product_values,
    find_value,
    get_property,
    get_property_group,
    save_value,
    update_product_fields,
)
from catalog_sync.detail_parser import DocumentUnavailable, load_document
from catalog_sync.linker import linked_product
from catalog_sync.logging_config import get_logger, log_sync_event
from catalog_sync.models import (
    FAILED,
    FLAG,
    NUMERIC,
    TEXTUAL,
    DetailDocument,
    FeatureEntry,
    MetadataRecord,
    Outcome,
    Product,
    Property,
    PropertyGroup,
    Value,
)
from catalog_sync.text_utils import (
    coerce_raw_value,
    fix_text,
    infer_datatype,
    parse_amount,
    parse_flag,
    truncate,
)

__all__ = [
    "product_text_fields",
    "ensure_property_groups",
    "build_value",
    "update_product",
]


def _position(icecat_id: str) -> Optional[int]:
    try:
        return int(icecat_id)
    except ValueError:
        return None


def product_text_fields(document: DetailDocument, initial_import: bool = False) -> Dict[str, Optional[str]]:
    """Cleaned description columns to write; fields missing from the document are left out.

    Short descriptions are only taken on the first import, later passes keep
    whatever was edited in the shop.
    """
    sources = {
        "long_description": document.long_description,
        "warranty": document.warranty,
    }
    if initial_import:
        sources["description"] = document.short_description

    fields: Dict[str, Optional[str]] = {}
    for prefix, texts in sources.items():
        for lang in ("de", "en"):
            text = fix_text(texts.get(lang))
            if text is not None:
                fields[f"{prefix}_{lang}"] = text
    return fields


def ensure_property_groups(
    db_path: str,
    document: DetailDocument,
    logger: logging.Logger,
) -> int:
    """Create the groups of ``document`` that are not known yet; returns how many were created."""
    created = 0
    for entry in document.groups:
        if get_property_group(db_path, entry.icecat_id):
            continue
        group = PropertyGroup(
            icecat_id=entry.icecat_id,
            name_de=entry.name_de,
            name_en=entry.name_en,
            position=_position(entry.icecat_id),
        )
        try:
            create_property_group(db_path, group)
            created += 1
        except sqlite3.Error as e:
            logger.error(f"PropertyGroup {entry.icecat_id} could not be created: {e}")
    return created


def _ensure_property(db_path: str, entry: FeatureEntry, datatype: str) -> Property:
    prop = get_property(db_path, entry.icecat_id)
    if prop is None:
        prop = Property(
            icecat_id=entry.icecat_id,
            datatype=datatype,
            name_de=entry.name_de,
            name_en=entry.name_en,
            position=_position(entry.icecat_id),
        )
        create_property(db_path, prop)
        prop = get_property(db_path, entry.icecat_id) or prop
    return prop


def build_value(
    db_path: str,
    entry: FeatureEntry,
    product_id: int,
    logger: logging.Logger,
) -> Value:
    """Resolve schema rows for a feature and return its value with the payload set."""
    raw = coerce_raw_value(entry.raw_value)
    state = infer_datatype(raw)
    prop = _ensure_property(db_path, entry, state)

    group_id = None
    if entry.group_icecat_id:
        group = get_property_group(db_path, entry.group_icecat_id)
        if group is not None:
            group_id = group.id
    if group_id is None:
        logger.debug(f"Property {entry.icecat_id} has no known group ({entry.group_icecat_id})")

    value = find_value(db_path, group_id, prop.id, product_id, state)
    if value is None:
        value = Value(
            property_group_id=group_id,
            property_id=prop.id,
            product_id=product_id,
            state=state,
        )

    if state == FLAG:
        value.flag = parse_flag(raw)
    elif state == NUMERIC:
        value.amount = parse_amount(raw)
        value.unit_de = entry.unit_de
        value.unit_en = entry.unit_en
    elif state == TEXTUAL:
        value.title_de = truncate(raw)
        value.title_en = truncate(raw)
        value.unit_de = entry.unit_de
        value.unit_en = entry.unit_en
    return value


def update_product(
    record: MetadataRecord,
    db_path: str = DB_PATH,
    product: Optional[Product] = None,
    initial_import: bool = False,
    xml_dir: Path = XML_DIR,
    logger: Optional[logging.Logger] = None,
) -> Outcome:
    """Rewrite texts and attribute values of a product from the cached document.

    Args:
        record: Ledger record whose document is read
        db_path: Path to the SQLite database
        product: Target product (default: the product linked to ``record``)
        initial_import: Also take the short descriptions
        xml_dir: Cache directory
        logger: Logger to report to (default: ``catalog_sync.normalizer``)

    Returns:
        Outcome; values that fail to save are logged and counted in ``detail``
    """
    logger = logger or get_logger("normalizer")
    key = record.catalog_item_id

    try:
        document = load_document(key, xml_dir)
    except DocumentUnavailable as e:
        logger.error(str(e))
        return Outcome(key=key, operation="update_product", status=FAILED,
                       reason="document_unavailable", detail=str(e))

    product = linked_product(db_path, record, product)
    if product is None:
        logger.error(f"No product linked to metadatum {key}")
        return Outcome(key=key, operation="update_product", status=FAILED, reason="no_product")

    try:
        update_product_fields(db_path, product.id, product_text_fields(document, initial_import))
    except sqlite3.Error as e:
        logger.error(f"Texts of product {product.id} could not be saved: {e}")

    ensure_property_groups(db_path, document, logger)

    try:
        delete_product_values(db_path, product.id)
    except sqlite3.Error as e:
        logger.error(f"Values of product {product.id} could not be cleared: {e}")
        return Outcome(key=key, operation="update_product", status=FAILED,
                       reason="persistence_error", detail=str(e))

    saved = failed = 0
    for entry in document.features:
        try:
            value = build_value(db_path, entry, product.id, logger)
            save_value(db_path, value)
            saved += 1
        except (sqlite3.Error, ValueError) as e:
            failed += 1
            logger.error(f"Value of property {entry.icecat_id} could not be saved for product {product.id}: {e}")
            log_sync_event("value_error", {
                "catalog_item_id": key,
                "product_id": product.id,
                "property_icecat_id": entry.icecat_id,
                "error": str(e),
            }, level=logging.ERROR, logger=logger)

    return Outcome(key=key, operation="update_product",
                   detail=f"product {product.id}: {saved} values, {failed} failed")
