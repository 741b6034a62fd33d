"""Tests for downloading detail documents into the cache."""

from datetime import datetime, timezone

import pytest
import requests  # type: ignore[import-untyped]

from catalog_sync import fetch
from catalog_sync.db import get_connection
from catalog_sync.detail_fetcher import cache_path_for, download, download_all
from catalog_sync.detail_parser import load_document
from catalog_sync.models import FAILED, OK, SKIPPED

from conftest import BASE_URL, DETAIL_XML

DOC_URL = f"{BASE_URL}/export/freexml.int/INT/42.xml"


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(fetch.time, "sleep", lambda seconds: None)


class TestDownload:
    """Tests for a single download."""

    def test_stores_document_under_item_id(self, add_record, xml_dir, fake_session):
        record = add_record("42", product_id=1)
        session = fake_session({DOC_URL: DETAIL_XML.encode("utf-8")})

        outcome = download(record, xml_dir=xml_dir, base_url=BASE_URL, session=session)

        assert outcome.ok
        assert (xml_dir / "42.xml").read_text(encoding="utf-8") == DETAIL_XML
        session.get.assert_called_once()
        assert session.get.call_args[0][0] == DOC_URL

    def test_existing_copy_without_overwrite(self, add_record, xml_dir, fake_session, write_document):
        record = add_record("42", product_id=1)
        write_document("42", "<old/>")
        session = fake_session({DOC_URL: DETAIL_XML.encode("utf-8")})

        outcome = download(record, xml_dir=xml_dir, base_url=BASE_URL, session=session)

        assert outcome.status == FAILED
        assert outcome.reason == "already_present"
        session.get.assert_not_called()
        assert (xml_dir / "42.xml").read_text(encoding="utf-8") == "<old/>"

    def test_overwrite_replaces_copy(self, add_record, xml_dir, fake_session, write_document):
        record = add_record("42", product_id=1)
        write_document("42", "<old/>")
        session = fake_session({DOC_URL: DETAIL_XML.encode("utf-8")})

        outcome = download(record, overwrite=True, xml_dir=xml_dir, base_url=BASE_URL, session=session)

        assert outcome.ok
        assert (xml_dir / "42.xml").read_text(encoding="utf-8") == DETAIL_XML

    def test_missing_path(self, add_record, xml_dir, fake_session):
        record = add_record("42", product_id=1, path="")
        session = fake_session({})

        outcome = download(record, xml_dir=xml_dir, base_url=BASE_URL, session=session)

        assert outcome.reason == "missing_path"
        session.get.assert_not_called()

    def test_http_error_is_reported(self, add_record, xml_dir, fake_session):
        record = add_record("42", product_id=1)

        outcome = download(record, xml_dir=xml_dir, base_url=BASE_URL, session=fake_session({}))

        assert outcome.status == FAILED
        assert outcome.reason == "transport_error"
        assert "404" in outcome.detail
        assert not (xml_dir / "42.xml").exists()

    def test_connection_error_is_retried_then_reported(self, add_record, xml_dir, fake_session):
        record = add_record("42", product_id=1)
        session = fake_session({DOC_URL: requests.exceptions.ConnectionError("refused")})

        outcome = download(record, xml_dir=xml_dir, base_url=BASE_URL, session=session)

        assert outcome.reason == "transport_error"
        assert session.get.call_count == fetch.MAX_RETRIES + 1

    def test_traversal_path_is_rejected(self, add_record, xml_dir, fake_session):
        record = add_record("42", product_id=1, path="../../etc/passwd")
        session = fake_session({})

        outcome = download(record, xml_dir=xml_dir, base_url=BASE_URL, session=session)

        assert outcome.reason == "transport_error"
        session.get.assert_not_called()

    def test_latin1_document_is_stored_as_utf8(self, add_record, xml_dir, fake_session):
        record = add_record("42", product_id=1)
        content = (
            b'<?xml version="1.0" encoding="ISO-8859-1"?>\n'
            b'<ICECAT-interface><Product ID="42">'
            b'<ProductDescription langid="4" LongDesc="Ger\xe4t f\xfcr B\xfcro"/>'
            b'</Product></ICECAT-interface>'
        )
        session = fake_session({DOC_URL: content})

        assert download(record, xml_dir=xml_dir, base_url=BASE_URL, session=session).ok

        text = (xml_dir / "42.xml").read_bytes().decode("utf-8")
        assert 'encoding="UTF-8"' in text
        assert load_document("42", xml_dir).long_description["de"] == "Ger\u00e4t f\u00fcr B\u00fcro"

    def test_invalid_utf8_bytes_are_replaced(self, add_record, xml_dir, fake_session):
        record = add_record("42", product_id=1)
        content = (
            b'<?xml version="1.0" encoding="UTF-8"?>\n'
            b'<ICECAT-interface><Product ID="42">'
            b'<ProductDescription langid="1" LongDesc="Ger\xe4t"/>'
            b'</Product></ICECAT-interface>'
        )
        session = fake_session({DOC_URL: content})

        assert download(record, xml_dir=xml_dir, base_url=BASE_URL, session=session).ok

        assert load_document("42", xml_dir).long_description["en"] == "Ger\ufffdt"


class TestDownloadAll:
    """Tests for the batch download selection."""

    def test_only_linked_and_recent_records(self, db_path, add_record, xml_dir, fake_session):
        add_record("42", product_id=1)
        add_record("43", product_id=2)
        add_record("44")
        with get_connection(db_path) as conn:
            conn.execute("UPDATE metadata SET updated_at = '2000-01-01 00:00:00' WHERE catalog_item_id = '43'")
            conn.commit()
        session = fake_session({
            f"{BASE_URL}/export/freexml.int/INT/{i}.xml": DETAIL_XML.encode("utf-8") for i in ("42", "43", "44")
        })

        recent = download_all(db_path, xml_dir=xml_dir, base_url=BASE_URL, session=session,
                              now=datetime.now(timezone.utc))
        assert [o.key for o in recent] == ["42"]

        everything = download_all(db_path, from_today=False, overwrite=True, xml_dir=xml_dir,
                                  base_url=BASE_URL, session=session)
        assert [o.key for o in everything] == ["42", "43"]
        assert all(o.ok for o in everything)

    def test_failures_do_not_stop_batch(self, db_path, add_record, xml_dir, fake_session):
        add_record("42", product_id=1)
        add_record("43", product_id=2)
        session = fake_session({f"{BASE_URL}/export/freexml.int/INT/43.xml": DETAIL_XML.encode("utf-8")})

        outcomes = download_all(db_path, from_today=False, xml_dir=xml_dir, base_url=BASE_URL,
                                session=session)

        assert [o.status for o in outcomes] == [FAILED, OK]
        assert (xml_dir / "43.xml").exists()


class TestCachePath:
    def test_rejects_unsafe_ids(self, xml_dir):
        with pytest.raises(ValueError):
            cache_path_for("../42", xml_dir)

    def test_plain_id(self, xml_dir):
        assert cache_path_for("42", xml_dir) == xml_dir / "42.xml"


class TestDownloadAllShutdown:
    def test_shutdown_during_download_keeps_outcomes(self, db_path, add_record, xml_dir, stopping_session):
        add_record("42", product_id=1)
        add_record("43", product_id=2)

        outcomes = download_all(db_path, from_today=False, xml_dir=xml_dir, base_url=BASE_URL,
                                session=stopping_session)

        assert [(o.key, o.status, o.reason) for o in outcomes] == [("42", SKIPPED, "shutdown")]
        assert stopping_session.get.call_count == 1
        assert not (xml_dir / "42.xml").exists()
