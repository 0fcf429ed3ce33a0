"""Shared utility functions for the chain resolver.

Consolidates logic used by ordering.py, owners.py and the record store:
  - Gujarati numeral normalization
  - Survey number normalization and list splitting
  - Owner name normalization
  - Date parsing and year extraction
"""

import re
import logging
from datetime import date, datetime
from typing import Any, Optional

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════
# 0. GUJARATI NUMERAL NORMALIZATION
# ═══════════════════════════════════════════════════

# Gujarati digits ૦–૯ (U+0AE6–U+0AEF) → ASCII 0–9
_GUJARATI_DIGIT_TABLE = str.maketrans(
    "૦૧૨૩૪૫૬૭૮૯",
    "0123456789",
)


def normalize_gujarati_numerals(s: str) -> str:
    """Replace Gujarati digits (૦–૯) with ASCII equivalents.

    Examples:
      "૧૨૩"       → "123"
      "સ.નં. ૪૫/૧" → "સ.નં. 45/1"
    """
    if not s or not isinstance(s, str):
        return s or ""
    return s.translate(_GUJARATI_DIGIT_TABLE)


# ═══════════════════════════════════════════════════
# 1. SURVEY NUMBER NORMALIZATION
# ═══════════════════════════════════════════════════

# Survey number prefixes as written on 7/12 extracts (English + Gujarati)
_SURVEY_PREFIXES = re.compile(
    r'^(?:'
    r's\.?\s*no\.?|'              # S.No., SNo
    r'survey\s*no\.?|'            # Survey No
    r'block\s*no\.?|'             # Block No
    r're[\s\-]?survey\s*no\.?|'   # Re-survey No
    r'સ\.?\s*નં\.?|'              # સ.નં. (Gujarati: survey number)
    r'બ્લોક\s*નં\.?'              # બ્લોક નં. (Gujarati: block number)
    r')\s*:?\s*',
    re.IGNORECASE | re.UNICODE,
)


def normalize_survey_number(sn: Any) -> str:
    """Normalize a survey number for comparison.

    Strips known prefixes, converts Gujarati digits, and removes whitespace.
    Separators are kept as written: "45/1" and "45-1" stay distinct because
    the register uses both for different subdivisions.
    """
    if sn is None:
        return ""
    s = normalize_gujarati_numerals(str(sn).strip())
    s = _SURVEY_PREFIXES.sub('', s)
    s = re.sub(r'\s+', '', s)
    return s.upper()


def split_survey_numbers(raw: str) -> list[str]:
    """Split a comma/semicolon-separated list of survey numbers.

    "45/1, 45/2; 46" → ["45/1", "45/2", "46"]
    """
    if not raw or not isinstance(raw, str):
        return []
    parts = re.split(r'[,;]+', normalize_gujarati_numerals(raw))
    return [p.strip() for p in parts if p and p.strip()]


# ═══════════════════════════════════════════════════
# 2. OWNER NAMES
# ═══════════════════════════════════════════════════

def normalize_owner_name(name: Any) -> str:
    """Collapse whitespace in an owner name.

    Owner identity inside a chain is the name exactly as entered, so no
    case folding or honorific stripping happens here.
    """
    if not name:
        return ""
    return re.sub(r'\s+', ' ', str(name)).strip()


# ═══════════════════════════════════════════════════
# 3. DATES
# ═══════════════════════════════════════════════════

_DATE_FORMATS = [
    "%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%d.%m.%Y", "%d%m%Y",
    "%Y/%m/%d",
]


def parse_date(value: Any) -> Optional[date]:
    """Parse a date from a date, datetime or string in common register formats.

    ISO timestamps ("2021-03-04T10:00:00Z") are accepted and truncated to
    their date. Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    s = normalize_gujarati_numerals(value.strip())
    if "T" in s:
        s = s.split("T", 1)[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    logger.debug(f"Unparseable date: {value!r}")
    return None
