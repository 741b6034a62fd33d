"""Tests for batch runs and per-product serialization."""

import threading
import time

import pytest

from catalog_sync import sync
from catalog_sync.db import get_product_relations, get_product_values
from catalog_sync.models import FAILED, OK, SKIPPED, Outcome
from catalog_sync.shutdown import get_shutdown_handler
from catalog_sync.sync import KeyedLocks, run_detail_pipeline, summarize, update_all_products

from conftest import DETAIL_XML


@pytest.fixture
def linked_records(add_record, add_product, write_document):
    """Items 42 and 43 linked to their own products, both documents cached."""
    records = []
    for item_id in ("42", "43"):
        product_id = add_product(f"P-{item_id}")
        records.append(add_record(item_id, product_id=product_id))
        write_document(item_id, DETAIL_XML)
    return records


class TestKeyedLocks:
    def test_same_key_same_lock(self):
        locks = KeyedLocks()
        assert locks.get(1) is locks.get(1)
        assert locks.get(1) is not locks.get(2)

    def test_hold_serializes_same_key(self):
        locks = KeyedLocks()
        active = []
        overlaps = []

        def work():
            with locks.hold("product"):
                active.append(1)
                if len(active) > 1:
                    overlaps.append(True)
                time.sleep(0.01)
                active.pop()

        threads = [threading.Thread(target=work) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == []


class TestRunDetailPipeline:
    """Tests for running detail steps over the ledger."""

    def test_runs_steps_in_order_per_record(self, db_path, xml_dir, image_dir, linked_records):
        outcomes = run_detail_pipeline(db_path, steps=("normalize", "relations"), workers=1,
                                       xml_dir=xml_dir, image_dir=image_dir)

        assert [(o.key, o.operation) for o in outcomes] == [
            ("42", "update_product"),
            ("42", "update_relations"),
            ("43", "update_product"),
            ("43", "update_relations"),
        ]
        assert all(o.ok for o in outcomes)
        first = linked_records[0]
        assert len(get_product_values(db_path, first.product_id)) == 4
        assert get_product_relations(db_path, first.product_id) == [linked_records[1].product_id]

    def test_parallel_workers(self, db_path, xml_dir, image_dir, linked_records):
        outcomes = run_detail_pipeline(db_path, steps=("normalize",), workers=2,
                                       xml_dir=xml_dir, image_dir=image_dir)

        assert [o.key for o in outcomes] == ["42", "43"]
        assert summarize(outcomes) == {OK: 2}
        for record in linked_records:
            assert len(get_product_values(db_path, record.product_id)) == 4

    def test_failures_are_folded(self, db_path, xml_dir, image_dir, linked_records):
        (xml_dir / "43.xml").unlink()

        outcomes = run_detail_pipeline(db_path, steps=("normalize",), workers=1,
                                       xml_dir=xml_dir, image_dir=image_dir)

        assert [o.status for o in outcomes] == [OK, FAILED]
        assert outcomes[1].reason == "document_unavailable"

    def test_unexpected_error_is_contained(self, db_path, xml_dir, image_dir, linked_records, monkeypatch):
        def boom(record, *args, **kwargs):
            if record.catalog_item_id == "42":
                raise RuntimeError("boom")
            return Outcome(key=record.catalog_item_id, operation="update_product")

        monkeypatch.setattr(sync, "update_product", boom)

        outcomes = run_detail_pipeline(db_path, steps=("normalize",), workers=1,
                                       xml_dir=xml_dir, image_dir=image_dir)

        assert outcomes[0].reason == "unexpected_error"
        assert outcomes[1].ok

    def test_unknown_step(self, db_path):
        with pytest.raises(ValueError):
            run_detail_pipeline(db_path, steps=("normalize", "publish"))

    def test_shutdown_skips_remaining_records(self, db_path, xml_dir, image_dir, linked_records):
        get_shutdown_handler().request()

        outcomes = run_detail_pipeline(db_path, workers=1, xml_dir=xml_dir, image_dir=image_dir)

        assert [o.status for o in outcomes] == [SKIPPED, SKIPPED]
        assert {o.reason for o in outcomes} == {"shutdown"}

    def test_shutdown_during_a_step_keeps_outcomes(self, db_path, xml_dir, image_dir, linked_records,
                                                   stopping_session):
        outcomes = run_detail_pipeline(db_path, steps=("normalize", "image"), workers=2,
                                       records=linked_records[:1], xml_dir=xml_dir, image_dir=image_dir,
                                       session=stopping_session)

        assert [(o.operation, o.status, o.reason) for o in outcomes] == [
            ("update_product", OK, None),
            ("image", SKIPPED, "shutdown"),
        ]
        assert len(get_product_values(db_path, linked_records[0].product_id)) == 4

    def test_explicit_records(self, db_path, xml_dir, image_dir, linked_records):
        outcomes = update_all_products(db_path, records=linked_records[1:], workers=1,
                                       xml_dir=xml_dir, image_dir=image_dir)

        assert [o.key for o in outcomes] == ["43"]
        assert get_product_values(db_path, linked_records[0].product_id) == []


def test_summarize():
    outcomes = [
        Outcome(key="1", operation="x"),
        Outcome(key="2", operation="x", status=FAILED),
        Outcome(key="3", operation="x"),
    ]
    assert summarize(outcomes) == {OK: 2, FAILED: 1}
