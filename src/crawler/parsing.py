"""
Value parsing helpers shared by both extraction decoders.

Unparsable values come back as None, never as a fabricated zero.
"""

from typing import Optional
from datetime import datetime
from urllib.parse import urljoin
import re


NUMBER_PATTERN = re.compile(r"(\d+(?:\.\d+)?)")
KOREAN_DATE_PATTERN = re.compile(r"(\d{4})\s*[.\-/년]\s*(\d{1,2})\s*[.\-/월]\s*(\d{1,2})\s*[.\-/일]?")
SHORT_DATE_PATTERN = re.compile(r"^(\d{2})\.(\d{1,2})\.(\d{1,2})\.?$")
STAR_GLYPH = "★"


def clean_text(text: Optional[str]) -> Optional[str]:
    """Collapse whitespace; empty text becomes None."""
    if text is None:
        return None
    cleaned = re.sub(r"\s+", " ", text).strip()
    return cleaned or None


def parse_number(text: Optional[str]) -> Optional[float]:
    """Strip everything but digits and dots, e.g. ``"12,900원" -> 12900.0``."""
    if not text:
        return None
    stripped = re.sub(r"[^\d.]", "", text)
    if not stripped:
        return None
    try:
        return float(stripped)
    except ValueError:
        return None


def parse_int(text: Optional[str]) -> Optional[int]:
    value = parse_number(text)
    return int(value) if value is not None else None


def normalize_rating(text: Optional[str]) -> Optional[float]:
    """
    Normalize a rating to a 5-point scale

    - numeric value above 5 is halved (10-point scales)
    - no number: count star glyphs
    - neither: None
    """
    if not text:
        return None
    match = NUMBER_PATTERN.search(text)
    if match:
        rating = float(match.group(1))
        return rating / 2 if rating > 5 else rating
    stars = text.count(STAR_GLYPH)
    if stars > 0:
        return float(stars)
    return None


def normalize_score(value) -> Optional[float]:
    """Numeric rating from a payload field (int, float or text)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        rating = float(value)
        return rating / 2 if rating > 5 else rating
    return normalize_rating(str(value))


def parse_date(text: Optional[str]) -> Optional[datetime]:
    """Parse ISO-8601, ``2024.01.15``, ``2024년 1월 15일`` or ``24.1.15.``."""
    if not text:
        return None
    text = text.strip()

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass

    match = KOREAN_DATE_PATTERN.search(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        try:
            return datetime(year, month, day)
        except ValueError:
            return None

    match = SHORT_DATE_PATTERN.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        try:
            return datetime(2000 + year, month, day)
        except ValueError:
            return None
    return None


def resolve_url(base_url: str, relative_url: Optional[str]) -> Optional[str]:
    if not relative_url:
        return None
    return urljoin(base_url, relative_url)
