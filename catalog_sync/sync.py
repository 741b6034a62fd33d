"""Batch runs over the ledger.

Detail steps of one product delete and recreate its values and relations
row by row, so two steps for the same product must never overlap. Work is
spread over a thread pool and serialized per product id with KeyedLocks;
different products run in parallel.
"""

import logging
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Hashable, Iterator, List, Optional, Sequence

import requests  # type: ignore[import-untyped]

from catalog_sync.config import DB_PATH, DEFAULT_WORKERS, IMAGE_DIR, XML_DIR
from catalog_sync.db import get_linked_metadata, init_db
from catalog_sync.images import import_missing_image
from catalog_sync.logging_config import get_logger, log_sync_event
from catalog_sync.models import FAILED, SKIPPED, MetadataRecord, Outcome
from catalog_sync.normalizer import update_product
from catalog_sync.relations import update_product_relations
from catalog_sync.shutdown import shutdown_requested

__all__ = [
    "KeyedLocks",
    "STEPS",
    "run_detail_pipeline",
    "update_all_products",
    "update_all_relations",
    "import_all_missing_images",
    "summarize",
]

STEPS = ("normalize", "relations", "image")


class KeyedLocks:
    """One lock per key, created on first use."""

    def __init__(self) -> None:
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self.get(key):
            yield


def summarize(outcomes: Sequence[Outcome]) -> Dict[str, int]:
    """Count outcomes per status."""
    return dict(Counter(o.status for o in outcomes))


def _record_steps(
    record: MetadataRecord,
    steps: Sequence[str],
    db_path: str,
    initial_import: bool,
    xml_dir: Path,
    image_dir: Path,
    session: Optional[requests.Session],
    logger: logging.Logger,
) -> List[Outcome]:
    runners: Dict[str, Callable[[], Outcome]] = {
        "normalize": lambda: update_product(
            record, db_path, initial_import=initial_import, xml_dir=xml_dir, logger=logger,
        ),
        "relations": lambda: update_product_relations(
            record, db_path, xml_dir=xml_dir, logger=logger,
        ),
        "image": lambda: import_missing_image(
            record, db_path, xml_dir=xml_dir, image_dir=image_dir, session=session, logger=logger,
        ),
    }

    outcomes: List[Outcome] = []
    for step in steps:
        try:
            outcomes.append(runners[step]())
        except KeyboardInterrupt:
            # Raised by fetch_bytes once a shutdown is requested
            logger.info(f"Shutdown during {step} for metadatum {record.catalog_item_id}")
            outcomes.append(Outcome(key=record.catalog_item_id, operation=step, status=SKIPPED,
                                    reason="shutdown"))
            break
        except Exception as e:
            logger.exception(f"Step {step} failed for metadatum {record.catalog_item_id}")
            outcomes.append(Outcome(key=record.catalog_item_id, operation=step, status=FAILED,
                                    reason="unexpected_error", detail=str(e)))
    return outcomes


def run_detail_pipeline(
    db_path: str = DB_PATH,
    steps: Sequence[str] = STEPS,
    initial_import: bool = False,
    records: Optional[Sequence[MetadataRecord]] = None,
    workers: int = DEFAULT_WORKERS,
    xml_dir: Path = XML_DIR,
    image_dir: Path = IMAGE_DIR,
    session: Optional[requests.Session] = None,
    locks: Optional[KeyedLocks] = None,
    logger: Optional[logging.Logger] = None,
) -> List[Outcome]:
    """Run the detail steps for every linked ledger record.

    Args:
        db_path: Path to the SQLite database
        steps: Subset of STEPS, run in the given order per record
        initial_import: Pass through to the normalizer (take short descriptions)
        records: Records to process (default: all linked records)
        workers: Thread pool size; 1 runs inline
        xml_dir: Cache directory
        image_dir: Image storage directory
        session: requests.Session for image downloads (only safe with workers=1)
        locks: Per-product locks, shared when several pipelines run at once
        logger: Logger to report to (default: ``catalog_sync.sync``)

    Returns:
        Outcomes in record order, steps in the given order
    """
    unknown = [s for s in steps if s not in STEPS]
    if unknown:
        raise ValueError(f"Unknown steps: {unknown}. Must be among {list(STEPS)}")

    logger = logger or get_logger("sync")
    locks = locks or KeyedLocks()
    init_db(db_path)
    if records is None:
        records = get_linked_metadata(db_path)

    logger.info(f"Running {', '.join(steps)} for {len(records)} records with {workers} workers")

    def process(record: MetadataRecord) -> List[Outcome]:
        if shutdown_requested():
            return [Outcome(key=record.catalog_item_id, operation="pipeline", status=SKIPPED,
                            reason="shutdown")]
        lock_key = record.product_id if record.product_id is not None else f"item:{record.catalog_item_id}"
        with locks.hold(lock_key):
            return _record_steps(record, steps, db_path, initial_import, xml_dir, image_dir,
                                 session, logger)

    if workers <= 1:
        results = [process(record) for record in records]
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(process, records))

    outcomes = [outcome for result in results for outcome in result]
    counts = summarize(outcomes)
    log_sync_event("batch_complete", {
        "message": f"Detail pipeline finished: {counts}",
        "steps": list(steps),
        "records": len(records),
        **counts,
    }, logger=logger)
    return outcomes


def update_all_products(db_path: str = DB_PATH, initial_import: bool = False, **kwargs) -> List[Outcome]:
    return run_detail_pipeline(db_path, steps=("normalize",), initial_import=initial_import, **kwargs)


def update_all_relations(db_path: str = DB_PATH, **kwargs) -> List[Outcome]:
    return run_detail_pipeline(db_path, steps=("relations",), **kwargs)


def import_all_missing_images(db_path: str = DB_PATH, **kwargs) -> List[Outcome]:
    return run_detail_pipeline(db_path, steps=("image",), **kwargs)
