"""Area unit conversion.

Owner relations, year slabs and slab entries store areas either as square
meters or as an acre + guntha pair. Every comparison in the chain engine is
done in square meters after conversion:

  1 acre   = 4046.86 m²
  1 guntha = 101.17 m²
  40 gunthas = 1 acre
"""

import math
import re
import logging
from typing import Optional

from landrecord.config import SQM_PER_ACRE, SQM_PER_GUNTHA, GUNTHAS_PER_ACRE, AREA_TOLERANCE_SQM
from landrecord.chain.utils import normalize_gujarati_numerals

logger = logging.getLogger(__name__)

# Accepted unit spellings → canonical unit key
_UNIT_ALIASES = {
    "sq_m": "sq_m", "sqm": "sq_m", "sq.m": "sq_m", "m2": "sq_m",
    "square_meters": "sq_m", "square meters": "sq_m",
    "acre": "acre", "acres": "acre",
    "guntha": "guntha", "gunthas": "guntha",
}


def canonical_unit(unit: str) -> str:
    """Map a unit spelling to "sq_m", "acre" or "guntha" (defaults to "sq_m")."""
    return _UNIT_ALIASES.get((unit or "").strip().lower(), "sq_m")


def to_square_meters(value: float, unit: str = "sq_m") -> float:
    """Convert a single-unit value to square meters."""
    u = canonical_unit(unit)
    if u == "acre":
        return (value or 0) * SQM_PER_ACRE
    if u == "guntha":
        return (value or 0) * SQM_PER_GUNTHA
    return float(value or 0)


def from_square_meters(sqm: float, unit: str = "sq_m") -> float:
    """Convert square meters to a single target unit."""
    u = canonical_unit(unit)
    if u == "acre":
        return sqm / SQM_PER_ACRE
    if u == "guntha":
        return sqm / SQM_PER_GUNTHA
    return sqm


def acre_guntha_to_square_meters(acres: float, gunthas: float) -> float:
    """Convert an acre + guntha pair to square meters.

    Each part uses its own constant, so 1 acre 0 gunthas is 4046.86 m² while
    0 acres 40 gunthas is 4046.8 m².
    """
    return (acres or 0) * SQM_PER_ACRE + (gunthas or 0) * SQM_PER_GUNTHA


def square_meters_to_acre_guntha(sqm: float) -> tuple[int, int]:
    """Split square meters into whole acres and rounded remaining gunthas."""
    total_acres = from_square_meters(sqm, "acre")
    acres = math.floor(total_acres)
    gunthas = round((total_acres - acres) * GUNTHAS_PER_ACRE)
    if gunthas == GUNTHAS_PER_ACRE:
        acres += 1
        gunthas = 0
    return acres, gunthas


def exceeds(amount: float, limit: float) -> bool:
    """True when ``amount`` is larger than ``limit`` beyond float tolerance."""
    return amount - limit > AREA_TOLERANCE_SQM


_AREA_PATTERN = re.compile(
    r'(\d+(?:\.\d+)?)\s*(' + '|'.join(
        re.escape(k) for k in sorted(_UNIT_ALIASES.keys(), key=len, reverse=True)
    ) + r')\b',
    re.IGNORECASE,
)


def parse_area_to_sqm(text: str) -> Optional[float]:
    """Parse an area string and convert to square meters.

    Handles compound extents like "2 acres 10 gunthas" by summing all
    matched number+unit pairs. A bare number is taken as square meters.
    """
    if not text or not isinstance(text, str):
        return None
    text = normalize_gujarati_numerals(text)
    total = 0.0
    found_any = False
    for match in _AREA_PATTERN.finditer(text):
        total += to_square_meters(float(match.group(1)), match.group(2))
        found_any = True
    if found_any:
        return total
    try:
        return float(text.replace(",", ""))
    except ValueError:
        return None
