"""Download of per-item detail documents into the local cache."""

import logging
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

import requests  # type: ignore[import-untyped]

from catalog_sync.config import BASE_URL, DB_PATH, REQUEST_TIMEOUT, SYNC_WINDOW_HOURS, XML_DIR
from catalog_sync.db import get_linked_metadata, init_db
from catalog_sync.fetch import FetchError, fetch_bytes
from catalog_sync.logging_config import get_logger, log_sync_event
from catalog_sync.models import FAILED, OK, SKIPPED, MetadataRecord, Outcome
from catalog_sync.shutdown import shutdown_requested
from catalog_sync.text_utils import to_utf8
from catalog_sync.url_validation import URLValidationError, build_document_url

__all__ = [
    "cache_path_for",
    "download",
    "download_all",
]

CACHE_KEY_RE = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9_.-]*$")


def cache_path_for(catalog_item_id: str, xml_dir: Path = XML_DIR) -> Path:
    """Cache file of a catalog item.

    Raises:
        ValueError: If the item id cannot be used as a file name
    """
    key = str(catalog_item_id)
    if not CACHE_KEY_RE.match(key):
        raise ValueError(f"Invalid catalog item id for cache: {key!r}")
    return Path(xml_dir) / f"{key}.xml"


def download(
    record: MetadataRecord,
    overwrite: bool = False,
    xml_dir: Path = XML_DIR,
    base_url: str = BASE_URL,
    session: Optional[requests.Session] = None,
    timeout: float = REQUEST_TIMEOUT,
    logger: Optional[logging.Logger] = None,
) -> Outcome:
    """Fetch the detail document of ``record`` and store it as UTF-8.

    Never raises for a single item: an existing copy (without
    ``overwrite``), a missing path and transport failures all come back as
    a failed Outcome.
    """
    logger = logger or get_logger("fetcher")
    key = record.catalog_item_id

    def failed(reason: str, detail: Optional[str] = None) -> Outcome:
        return Outcome(key=key, operation="download", status=FAILED, reason=reason, detail=detail)

    try:
        target = cache_path_for(key, xml_dir)
    except ValueError as e:
        logger.error(str(e))
        return failed("invalid_item_id", str(e))

    if target.exists() and not overwrite:
        logger.error(f"XML for metadatum {record.article_number} ({key}) exists (no overwrite)")
        return failed("already_present")

    if not record.path:
        logger.error(f"Path missing for metadatum {record.article_number} ({key})")
        return failed("missing_path")

    try:
        url = build_document_url(record.path, base_url)
        data = fetch_bytes(url, session=session, timeout=timeout)
    except (FetchError, URLValidationError) as e:
        logger.error(f"Download error for {key} ({record.path}): {e}")
        log_sync_event("download_error", {
            "catalog_item_id": key,
            "path": record.path,
            "error": str(e),
        }, level=logging.ERROR, logger=logger)
        return failed("transport_error", str(e))

    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = target.parent / (target.name + ".part")
    try:
        tmp_path.write_text(to_utf8(data), encoding="utf-8")
        tmp_path.replace(target)
    except OSError as e:
        logger.error(f"Could not write {target}: {e}")
        tmp_path.unlink(missing_ok=True)
        return failed("write_error", str(e))

    logger.debug(f"Stored detail document {key} ({len(data)} bytes)")
    return Outcome(key=key, operation="download", detail=str(target))


def download_all(
    db_path: str = DB_PATH,
    overwrite: bool = False,
    from_today: bool = True,
    xml_dir: Path = XML_DIR,
    base_url: str = BASE_URL,
    session: Optional[requests.Session] = None,
    window_hours: int = SYNC_WINDOW_HOURS,
    now: Optional[datetime] = None,
    logger: Optional[logging.Logger] = None,
) -> List[Outcome]:
    """Download detail documents for all linked ledger records.

    Args:
        db_path: Path to the SQLite database
        overwrite: Replace documents that are already cached
        from_today: Only records updated within the last ``window_hours``
        xml_dir: Cache directory
        base_url: Catalog base URL
        session: Optional requests.Session
        window_hours: Size of the recency window
        now: Current UTC time (default: now)
        logger: Logger to report to (default: ``catalog_sync.fetcher``)
    """
    logger = logger or get_logger("fetcher")
    init_db(db_path)

    since = None
    if from_today:
        since = (now or datetime.now(timezone.utc)) - timedelta(hours=window_hours)
    records = get_linked_metadata(db_path, updated_since=since)
    logger.info(f"Downloading {len(records)} detail documents (overwrite={overwrite})")

    outcomes: List[Outcome] = []
    for record in records:
        if shutdown_requested():
            logger.info("Shutdown requested, stopping downloads")
            break
        try:
            outcomes.append(download(
                record,
                overwrite=overwrite,
                xml_dir=xml_dir,
                base_url=base_url,
                session=session,
                logger=logger,
            ))
        except KeyboardInterrupt:
            logger.info(f"Shutdown requested while downloading {record.catalog_item_id}")
            outcomes.append(Outcome(key=record.catalog_item_id, operation="download",
                                    status=SKIPPED, reason="shutdown"))
            break

    failed = sum(1 for o in outcomes if not o.ok)
    downloaded = sum(1 for o in outcomes if o.status == OK)
    log_sync_event("download_complete", {
        "message": f"Downloaded {downloaded} detail documents, {failed} failures",
        "downloaded": downloaded,
        "failed": failed,
    }, logger=logger)
    return outcomes
