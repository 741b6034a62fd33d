"""Product catalog synchronization: index ledger, detail documents, typed attributes."""

__version__ = "0.1.0"

# Re-export main components for convenient imports
from catalog_sync.db import init_db
from catalog_sync.detail_fetcher import download, download_all
from catalog_sync.images import import_missing_image
from catalog_sync.index_reader import import_catalog
from catalog_sync.linker import assign_products
from catalog_sync.models import MetadataRecord, Outcome, Product
from catalog_sync.normalizer import update_product
from catalog_sync.relations import update_product_relations
from catalog_sync.sync import run_detail_pipeline

__all__ = [
    # Version
    "__version__",
    # Models
    "MetadataRecord",
    "Outcome",
    "Product",
    # Core functions
    "init_db",
    "import_catalog",
    "assign_products",
    "download",
    "download_all",
    "update_product",
    "update_product_relations",
    "import_missing_image",
    "run_detail_pipeline",
]
