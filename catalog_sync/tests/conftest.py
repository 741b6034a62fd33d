"""Shared fixtures for the catalog sync test suite."""

from pathlib import Path
from typing import Dict, Union
from unittest.mock import MagicMock

import pytest
import requests  # type: ignore[import-untyped]

from catalog_sync import fetch
from catalog_sync.db import init_db, upsert_metadata, upsert_product, set_metadata_product
from catalog_sync.models import MetadataRecord
from catalog_sync.shutdown import get_shutdown_handler

BASE_URL = "https://data.example-catalog.test"

INDEX_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<ICECAT-interface>
  <files.index Generated="20240101000000">
    <file path="export/freexml.int/INT/42.xml" Product_ID="42" Updated="20240101120000"
          Quality="ICECAT" Supplier_id="1" Prod_ID="ABC-1" Catid="151" On_Market="1"
          Model_Name="ProBook 450" Product_View="1000">
      <EAN_UPCS><EAN_UPC Value="0123456789012"/></EAN_UPCS>
    </file>
    <file path="export/freexml.int/INT/43.xml" Product_ID="43" Updated="20240102120000"
          Quality="ICECAT" Supplier_id="1" Prod_ID="ABC-2" Catid="151" On_Market="1"
          Product_View="12"/>
    <file path="export/freexml.int/INT/77.xml" Product_ID="77" Updated="20240102120000"
          Quality="SUPPLIER" Supplier_id="2" Prod_ID="XYZ-9" Catid="151" On_Market="0"
          Model_Name="Other" Product_View="3"/>
  </files.index>
</ICECAT-interface>
"""

DETAIL_XML = r"""<?xml version="1.0" encoding="UTF-8"?>
<ICECAT-interface>
  <Product ID="42" Prod_id="ABC-1" HighPic="https://images.example-catalog.test/img/high/42-HP.jpg">
    <ProductDescription langid="1" ShortDesc="Business notebook" LongDesc="Fast &amp;amp; light\nSecond line" WarrantyInfo="1 year"/>
    <ProductDescription langid="4" ShortDesc="Business-Notebook" LongDesc="Schnell" WarrantyInfo="1 Jahr"/>
    <CategoryFeatureGroup ID="5">
      <FeatureGroup ID="50"><Name ID="1" langid="1" Value="Display"/></FeatureGroup>
    </CategoryFeatureGroup>
    <CategoryFeatureGroup ID="6">
      <FeatureGroup ID="60"><Name langid="1" Value="Ports"/><Name langid="4" Value="Anschlüsse"/></FeatureGroup>
    </CategoryFeatureGroup>
    <ProductFeature CategoryFeatureGroup_ID="5" Value="15.6">
      <Feature ID="99">
        <Measure><Signs><Sign langid="1">in</Sign></Signs></Measure>
        <Name langid="1" Value="Display diagonal"/>
      </Feature>
    </ProductFeature>
    <ProductFeature CategoryFeatureGroup_ID="6" Value="Y">
      <Feature ID="100"><Name langid="1" Value="USB"/><Name langid="4" Value="USB-Anschluss"/></Feature>
    </ProductFeature>
    <ProductFeature CategoryFeatureGroup_ID="6" Value="HDMI, VGA">
      <Feature ID="101"><Name langid="1" Value="Video ports"/></Feature>
    </ProductFeature>
    <ProductFeature CategoryFeatureGroup_ID="777" Value="">
      <Feature ID="102"><Name langid="9" Value="Divers"/></Feature>
    </ProductFeature>
    <ProductRelated ID="1"><Product ID="43"/></ProductRelated>
    <ProductRelated ID="2"><Product ID="44"/></ProductRelated>
    <ProductRelated ID="3"><Product ID="45"/></ProductRelated>
    <ProductRelated ID="4"><Product ID="999"/></ProductRelated>
  </Product>
</ICECAT-interface>
"""


def detail_xml(features: str = "", groups: str = "", extra: str = "", high_pic: str = "") -> str:
    """Build a minimal detail document from XML fragments."""
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<ICECAT-interface>
  <Product ID="1" HighPic="{high_pic}">
    {groups}
    {features}
    {extra}
  </Product>
</ICECAT-interface>
"""


def make_response(content: bytes = b"", status_code: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.content = content
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} Error", response=resp
        )
    return resp


@pytest.fixture
def db_path(tmp_path):
    """Create a temporary database."""
    path = str(tmp_path / "catalog.db")
    init_db(path)
    return path


@pytest.fixture
def xml_dir(tmp_path) -> Path:
    path = tmp_path / "xml"
    path.mkdir()
    return path


@pytest.fixture
def image_dir(tmp_path) -> Path:
    return tmp_path / "images"


@pytest.fixture
def write_document(xml_dir):
    """Place a document in the cache as the fetcher would."""
    def _write(catalog_item_id: str, content: str) -> Path:
        path = xml_dir / f"{catalog_item_id}.xml"
        path.write_text(content, encoding="utf-8")
        return path
    return _write


@pytest.fixture
def fake_session():
    """Build a session whose GET answers from a URL -> bytes/exception mapping."""
    def _build(routes: Dict[str, Union[bytes, Exception, MagicMock]]) -> MagicMock:
        session = MagicMock(spec=requests.Session)

        def get(url, timeout=None):
            answer = routes.get(url)
            if answer is None:
                return make_response(status_code=404)
            if isinstance(answer, Exception):
                raise answer
            if isinstance(answer, bytes):
                return make_response(answer)
            return answer

        session.get.side_effect = get
        return session
    return _build


@pytest.fixture
def add_record(db_path):
    """Insert a ledger record, optionally linked to a product."""
    def _add(
        catalog_item_id: str,
        article_number: str = "",
        category_id: str = "151",
        product_id=None,
        path: str = None,
    ) -> MetadataRecord:
        record = MetadataRecord(
            catalog_item_id=catalog_item_id,
            path=path if path is not None else f"export/freexml.int/INT/{catalog_item_id}.xml",
            supplier_id="1",
            article_number=article_number or f"ART-{catalog_item_id}",
            category_id=category_id,
        )
        record.id = upsert_metadata(db_path, record)
        if product_id is not None:
            set_metadata_product(db_path, record.id, product_id)
            record.product_id = product_id
        return record
    return _add


@pytest.fixture
def add_product(db_path):
    def _add(number: str, article_number: str = None) -> int:
        return upsert_product(db_path, number=number, article_number=article_number, title=number)
    return _add


@pytest.fixture(autouse=True)
def reset_shutdown():
    """Tests must not leak a shutdown request into each other."""
    get_shutdown_handler().reset()
    yield
    get_shutdown_handler().reset()


@pytest.fixture
def stopping_session(monkeypatch):
    """A session that requests shutdown during its first GET and answers 503."""
    monkeypatch.setattr(fetch.time, "sleep", lambda seconds: None)
    session = MagicMock(spec=requests.Session)

    def get(url, timeout=None):
        get_shutdown_handler().request()
        return make_response(status_code=503)

    session.get.side_effect = get
    return session
