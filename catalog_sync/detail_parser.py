"""Parsing of cached detail documents.

A detail document is rooted at ``ICECAT-interface/Product``. Names, units
and descriptions are repeated per language and tagged with a ``langid``;
display names resolve German first, then English, then whatever language
the document offers.
"""

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

from catalog_sync.config import LANG_DE, LANG_EN, XML_DIR
from catalog_sync.detail_fetcher import cache_path_for
from catalog_sync.models import DetailDocument, FeatureEntry, GroupEntry

__all__ = [
    "DocumentUnavailable",
    "resolve_languages",
    "parse_detail_document",
    "load_document",
]

LANGUAGES = {"de": LANG_DE, "en": LANG_EN}


class DocumentUnavailable(Exception):
    """Raised when no usable cached document exists for a catalog item."""
    pass


def resolve_languages(values: Dict[str, str]) -> Tuple[Optional[str], Optional[str]]:
    """Pick (German, English) from a langid -> text mapping.

    English is taken as is; German falls back to English and then to the
    first language present.
    """
    name_en = values.get(LANG_EN) or None
    name_de = values.get(LANG_DE) or name_en
    if name_de is None:
        name_de = next((v for v in values.values() if v), None)
    return name_de, name_en


def _by_language(elements: Iterable[ET.Element], attribute: Optional[str] = "Value") -> Dict[str, str]:
    """Map langid to the attribute (or element text when ``attribute`` is None)."""
    result: Dict[str, str] = {}
    for element in elements:
        langid = element.get("langid")
        text = element.get(attribute) if attribute else element.text
        if langid is None or text is None:
            continue
        result.setdefault(langid, text.strip() if attribute is None else text)
    return result


def _descriptions(product: ET.Element, attribute: str) -> Dict[str, Optional[str]]:
    texts: Dict[str, Optional[str]] = {}
    for lang, langid in LANGUAGES.items():
        node = product.find(f"ProductDescription[@langid='{langid}']")
        texts[lang] = node.get(attribute) if node is not None else None
    return texts


def _product_element(root: ET.Element) -> ET.Element:
    if root.tag == "Product":
        return root
    product = root.find("Product")
    if product is None:
        product = root.find(".//Product")
    if product is None:
        raise ValueError("Document has no Product element")
    return product


def parse_detail_document(content: bytes) -> DetailDocument:
    """Parse the raw bytes of a detail document.

    Raises:
        ValueError: If the document is not XML or has no Product element
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise ValueError(f"Document is not well-formed: {e}") from e

    product = _product_element(root)
    document = DetailDocument(
        short_description=_descriptions(product, "ShortDesc"),
        long_description=_descriptions(product, "LongDesc"),
        warranty=_descriptions(product, "WarrantyInfo"),
        high_pic=product.get("HighPic") or None,
    )

    for group_node in product.findall("CategoryFeatureGroup"):
        icecat_id = group_node.get("ID")
        if not icecat_id:
            continue
        name_de, name_en = resolve_languages(_by_language(group_node.findall("FeatureGroup/Name")))
        document.groups.append(GroupEntry(icecat_id=icecat_id, name_de=name_de, name_en=name_en))

    for feature_node in product.findall("ProductFeature"):
        feature = feature_node.find("Feature")
        if feature is None or not feature.get("ID"):
            continue
        name_de, name_en = resolve_languages(_by_language(feature.findall("Name")))
        unit_de, unit_en = resolve_languages(
            _by_language(feature.findall("Measure/Signs/Sign"), attribute=None)
        )
        document.features.append(FeatureEntry(
            icecat_id=feature.get("ID").strip(),
            raw_value=feature_node.get("Value", ""),
            group_icecat_id=feature_node.get("CategoryFeatureGroup_ID"),
            name_de=name_de,
            name_en=name_en,
            unit_de=unit_de,
            unit_en=unit_en,
        ))

    for related in product.findall("ProductRelated/Product"):
        item_id = related.get("ID")
        if item_id:
            document.related_item_ids.append(item_id.strip())

    return document


def load_document(catalog_item_id: str, xml_dir: Path = XML_DIR) -> DetailDocument:
    """Read and parse the cached document of a catalog item.

    Raises:
        DocumentUnavailable: If the document is not cached or cannot be parsed
    """
    try:
        path = cache_path_for(catalog_item_id, xml_dir)
        content = path.read_bytes()
    except (OSError, ValueError) as e:
        raise DocumentUnavailable(f"File not available for {catalog_item_id}: {e}") from e

    try:
        return parse_detail_document(content)
    except ValueError as e:
        raise DocumentUnavailable(f"File {path} unusable: {e}") from e
