"""Configuration and constants for catalog synchronization."""

import os
from pathlib import Path

from dotenv import load_dotenv

__all__ = [
    "BASE_URL",
    "USERNAME",
    "PASSWORD",
    "SUPPLIER_ID",
    "HEADERS",
    "REQUEST_TIMEOUT",
    "MAX_RETRIES",
    "RETRY_BACKOFF_BASE",
    "MAX_RETRY_BACKOFF",
    "RETRY_STATUS_CODES",
    "DATA_DIR",
    "CATALOG_DIR",
    "XML_DIR",
    "IMAGE_DIR",
    "DB_PATH",
    "FULL_INDEX_NAME",
    "SYNC_WINDOW_HOURS",
    "DEFAULT_WORKERS",
    "LANG_EN",
    "LANG_DE",
    "TEXT_VALUE_MAX_LENGTH",
    "EMPTY_VALUE_SENTINEL",
    "FLAG_TOKENS",
    "FLAG_TRUE_TOKEN",
]

_PROJECT_ROOT = Path(__file__).parent.parent

load_dotenv(dotenv_path=_PROJECT_ROOT / ".env")

# Remote catalog
BASE_URL = os.getenv("CATALOG_BASE_URL", "https://data.icecat.biz")
USERNAME = os.getenv("CATALOG_USERNAME")
PASSWORD = os.getenv("CATALOG_PASSWORD")

# Only index entries of this supplier are imported (1 = Hewlett Packard)
SUPPLIER_ID = os.getenv("CATALOG_SUPPLIER_ID", "1")

HEADERS = {
    "User-Agent": "catalog-sync/0.1 (product data import)",
}

# Request timeouts
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "30"))

# Retry settings with exponential backoff
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "3"))
RETRY_BACKOFF_BASE = 2.0
MAX_RETRY_BACKOFF = 30.0
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

# Local storage
DATA_DIR = Path(os.getenv("CATALOG_DATA_DIR", str(_PROJECT_ROOT / "data")))
CATALOG_DIR = DATA_DIR / "catalogs"
XML_DIR = DATA_DIR / "xml"
IMAGE_DIR = DATA_DIR / "images"
DB_PATH = str(DATA_DIR / "catalog.db")
FULL_INDEX_NAME = "files.index.xml"

# Batch settings
SYNC_WINDOW_HOURS = int(os.getenv("SYNC_WINDOW_HOURS", "24"))
DEFAULT_WORKERS = int(os.getenv("SYNC_WORKERS", "4"))

# Language ids used by the feed
LANG_EN = "1"
LANG_DE = "4"

# Attribute values
TEXT_VALUE_MAX_LENGTH = 252
EMPTY_VALUE_SENTINEL = "."
FLAG_TOKENS = frozenset({"Y", "N"})
FLAG_TRUE_TOKEN = "Y"
