"""Data models for catalog records, products and the attribute schema."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

__all__ = [
    "FLAG",
    "NUMERIC",
    "TEXTUAL",
    "DATATYPES",
    "OK",
    "SKIPPED",
    "FAILED",
    "MetadataRecord",
    "Product",
    "PropertyGroup",
    "Property",
    "Value",
    "ImageUpload",
    "Outcome",
    "GroupEntry",
    "FeatureEntry",
    "DetailDocument",
]

# Datatype tags
FLAG = "flag"
NUMERIC = "numeric"
TEXTUAL = "textual"
DATATYPES = (FLAG, NUMERIC, TEXTUAL)

# Outcome statuses
OK = "ok"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class MetadataRecord:
    """Ledger entry for one catalog item of the index."""

    catalog_item_id: str
    path: Optional[str] = None
    updated_at_source: Optional[str] = None
    quality: Optional[str] = None
    supplier_id: Optional[str] = None
    article_number: Optional[str] = None
    category_id: Optional[str] = None
    on_market: Optional[str] = None
    model_name: Optional[str] = None
    product_view: Optional[str] = None

    # Weak link to the host product
    product_id: Optional[int] = None

    # Database fields (set after insert/update)
    id: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "MetadataRecord":
        return cls(
            id=row["id"],
            catalog_item_id=row["catalog_item_id"],
            path=row["path"],
            updated_at_source=row["updated_at_source"],
            quality=row["quality"],
            supplier_id=row["supplier_id"],
            article_number=row["article_number"],
            category_id=row["category_id"],
            on_market=row["on_market"],
            model_name=row["model_name"],
            product_view=row["product_view"],
            product_id=row["product_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass
class Product:
    """The host application's product, reduced to what the sync touches."""

    id: int
    number: Optional[str] = None
    article_number: Optional[str] = None
    title: Optional[str] = None
    description_de: Optional[str] = None
    description_en: Optional[str] = None
    long_description_de: Optional[str] = None
    long_description_en: Optional[str] = None
    warranty_de: Optional[str] = None
    warranty_en: Optional[str] = None
    photo_file_name: Optional[str] = None
    photo_path: Optional[str] = None

    @property
    def has_image(self) -> bool:
        return bool(self.photo_file_name)

    @classmethod
    def from_row(cls, row: Any) -> "Product":
        return cls(**{k: row[k] for k in row.keys() if k in cls.__dataclass_fields__})


@dataclass
class PropertyGroup:
    icecat_id: str
    name_de: Optional[str] = None
    name_en: Optional[str] = None
    position: Optional[int] = None
    id: Optional[int] = None


@dataclass
class Property:
    icecat_id: str
    datatype: str
    name_de: Optional[str] = None
    name_en: Optional[str] = None
    position: Optional[int] = None
    id: Optional[int] = None


@dataclass
class Value:
    """Typed value of one property for one product.

    Identity is (property_group_id, property_id, product_id, state); only
    the payload fields matching ``state`` are filled.
    """

    property_id: int
    product_id: int
    state: str
    property_group_id: Optional[int] = None
    flag: Optional[bool] = None
    amount: Optional[float] = None
    title_de: Optional[str] = None
    title_en: Optional[str] = None
    unit_de: Optional[str] = None
    unit_en: Optional[str] = None
    id: Optional[int] = None


@dataclass
class ImageUpload:
    """Raw image bytes paired with the file name they are stored under."""

    data: bytes
    original_filename: str


@dataclass
class Outcome:
    """Result of one operation on one catalog item or product."""

    key: str
    operation: str
    status: str = OK
    reason: Optional[str] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != FAILED


# Parsed detail document ---------------------------------------------------


@dataclass
class GroupEntry:
    icecat_id: str
    name_de: Optional[str] = None
    name_en: Optional[str] = None


@dataclass
class FeatureEntry:
    icecat_id: str
    raw_value: str
    group_icecat_id: Optional[str] = None
    name_de: Optional[str] = None
    name_en: Optional[str] = None
    unit_de: Optional[str] = None
    unit_en: Optional[str] = None


@dataclass
class DetailDocument:
    """Everything the sync reads from one cached detail document."""

    short_description: Dict[str, Optional[str]] = field(default_factory=dict)
    long_description: Dict[str, Optional[str]] = field(default_factory=dict)
    warranty: Dict[str, Optional[str]] = field(default_factory=dict)
    groups: List[GroupEntry] = field(default_factory=list)
    features: List[FeatureEntry] = field(default_factory=list)
    related_item_ids: List[str] = field(default_factory=list)
    high_pic: Optional[str] = None
