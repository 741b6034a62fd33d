"""Import of a product's primary image from its detail document."""

import logging
import sqlite3
from pathlib import Path
from typing import Optional

import requests  # type: ignore[import-untyped]

from catalog_sync.config import DB_PATH, IMAGE_DIR, REQUEST_TIMEOUT, XML_DIR
from catalog_sync.db import set_product_photo
from catalog_sync.detail_parser import DocumentUnavailable, load_document
from catalog_sync.fetch import FetchError, fetch_bytes
from catalog_sync.linker import linked_product
from catalog_sync.logging_config import get_logger, log_sync_event
from catalog_sync.models import FAILED, SKIPPED, ImageUpload, MetadataRecord, Outcome, Product
from catalog_sync.url_validation import URLValidationError, filename_from_url, validate_image_url

__all__ = ["download_image", "attach_image", "import_missing_image"]


def download_image(
    url: str,
    session: Optional[requests.Session] = None,
    timeout: float = REQUEST_TIMEOUT,
) -> ImageUpload:
    """Fetch an image and name it after the last segment of its URL."""
    url = validate_image_url(url)
    data = fetch_bytes(url, session=session, timeout=timeout)
    return ImageUpload(data=data, original_filename=filename_from_url(url))


def attach_image(
    db_path: str,
    product: Product,
    upload: ImageUpload,
    image_dir: Path = IMAGE_DIR,
) -> Path:
    """Store the image bytes and record them on the product."""
    target = Path(image_dir) / str(product.id) / upload.original_filename
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(upload.data)

    set_product_photo(db_path, product.id, upload.original_filename, str(target))
    product.photo_file_name = upload.original_filename
    product.photo_path = str(target)
    return target


def import_missing_image(
    record: MetadataRecord,
    db_path: str = DB_PATH,
    product: Optional[Product] = None,
    xml_dir: Path = XML_DIR,
    image_dir: Path = IMAGE_DIR,
    session: Optional[requests.Session] = None,
    logger: Optional[logging.Logger] = None,
) -> Outcome:
    """Attach the document's image to a product that has none yet.

    Existing images are never replaced. Download and storage problems are
    logged as warnings and reported in the Outcome, never raised.
    """
    logger = logger or get_logger("images")
    key = record.catalog_item_id

    try:
        document = load_document(key, xml_dir)
    except DocumentUnavailable as e:
        logger.error(str(e))
        return Outcome(key=key, operation="import_image", status=FAILED,
                       reason="document_unavailable", detail=str(e))

    product = linked_product(db_path, record, product)
    if product is None:
        logger.error(f"No product linked to metadatum {key}")
        return Outcome(key=key, operation="import_image", status=FAILED, reason="no_product")

    if product.has_image:
        return Outcome(key=key, operation="import_image", status=SKIPPED, reason="image_present")
    if not document.high_pic:
        return Outcome(key=key, operation="import_image", status=SKIPPED, reason="no_image")

    try:
        upload = download_image(document.high_pic, session=session)
        target = attach_image(db_path, product, upload, image_dir)
    except (FetchError, URLValidationError, OSError, sqlite3.Error) as e:
        logger.warning(f"Image {document.high_pic} for product {product.id} could not be loaded: {e}")
        log_sync_event("image_warning", {
            "catalog_item_id": key,
            "product_id": product.id,
            "url": document.high_pic,
            "error": str(e),
        }, level=logging.WARNING, logger=logger)
        return Outcome(key=key, operation="import_image", status=FAILED,
                       reason="image_error", detail=str(e))

    return Outcome(key=key, operation="import_image", detail=str(target))
