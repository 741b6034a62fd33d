"""Text cleanup and value typing for catalog feed data."""

import html
import re
from typing import Optional

from bs4 import BeautifulSoup
from bs4.dammit import EncodingDetector

from catalog_sync.config import (
    EMPTY_VALUE_SENTINEL,
    FLAG_TOKENS,
    FLAG_TRUE_TOKEN,
    TEXT_VALUE_MAX_LENGTH,
)
from catalog_sync.models import FLAG, NUMERIC, TEXTUAL

__all__ = [
    "fix_text",
    "repair_mojibake",
    "coerce_raw_value",
    "infer_datatype",
    "parse_flag",
    "parse_amount",
    "truncate",
    "to_utf8",
]

NUMERIC_RE = re.compile(r"^[+-]?\d+(\.\d+)?$")

XML_DECLARATION_ENCODING_RE = re.compile(
    r"""^(\s*<\?xml[^>]*?encoding\s*=\s*)(["'])[^"']*\2""", re.IGNORECASE
)

# Escaped markup can be nested this deep in the feed
MAX_UNESCAPE_PASSES = 5

# Characters that show up when UTF-8 bytes were decoded as Latin-1
MOJIBAKE_MARKERS = ("Ã", "Â")


def repair_mojibake(value: str) -> str:
    """Undo UTF-8 text that was decoded as Latin-1 ('GerÃ¤t' -> 'Gerät')."""
    if not any(marker in value for marker in MOJIBAKE_MARKERS):
        return value
    try:
        return value.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return value


def fix_text(value: Optional[str]) -> Optional[str]:
    """Clean a description or warranty text from the feed.

    Repairs encoding damage, resolves HTML entities, drops script and style
    blocks and turns the feed's literal ``\\n`` markers into line breaks.
    Markup the feed uses for formatting (``<b>``, ``<br>``...) is kept.
    """
    if value is None:
        return None

    value = repair_mojibake(value)

    # Entities are double-escaped in the source; unescape before dropping
    # script/style so escaped blocks cannot come back to life
    for _ in range(MAX_UNESCAPE_PASSES):
        soup = BeautifulSoup(html.unescape(value), "html.parser")
        for tag in soup(["script", "style"]):
            tag.decompose()
        cleaned = soup.decode(formatter=None)
        if cleaned == value:
            break
        value = cleaned

    value = value.replace("\\n", "<br />")
    return value.strip()


def coerce_raw_value(raw: Optional[str]) -> str:
    """Replace a missing or empty raw value with the sentinel."""
    if raw is None or raw == "":
        return EMPTY_VALUE_SENTINEL
    return raw


def infer_datatype(raw: str) -> str:
    """Datatype tag of a raw feature value: flag, numeric or textual."""
    if raw in FLAG_TOKENS:
        return FLAG
    if NUMERIC_RE.match(raw.strip()):
        return NUMERIC
    return TEXTUAL


def parse_flag(raw: str) -> bool:
    return raw == FLAG_TRUE_TOKEN


def parse_amount(raw: str) -> float:
    return float(raw.strip())


def truncate(value: str, length: int = TEXT_VALUE_MAX_LENGTH, omission: str = "...") -> str:
    """Cut ``value`` to at most ``length`` characters, ending in ``omission``."""
    if len(value) <= length:
        return value
    return value[: length - len(omission)] + omission


def to_utf8(data: bytes) -> str:
    """Decode a downloaded XML document to text for the UTF-8 cache.

    Bytes are decoded with the encoding named by a byte order mark or the
    XML declaration (UTF-8 when neither is present). The feed mixes in bytes
    that are invalid in that encoding; those are replaced instead of
    failing. The declaration is rewritten to name UTF-8 so the cached copy
    parses consistently.
    """
    data, bom_encoding = EncodingDetector.strip_byte_order_mark(data)
    encoding = bom_encoding or EncodingDetector.find_declared_encoding(data, is_html=False) or "utf-8"
    try:
        text = data.decode(encoding, errors="replace")
    except LookupError:
        text = data.decode("utf-8", errors="replace")
    return XML_DECLARATION_ENCODING_RE.sub(r"\1\2UTF-8\2", text, count=1)
