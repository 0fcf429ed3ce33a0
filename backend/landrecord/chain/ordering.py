"""Chronological ordering of nondhs.

The order is the backbone of every other computation in the chain: validity
propagation counts *later* invalidations, previous-owner resolution walks
*earlier* nondhs, and date bounds come from the neighbours in this order.

Ordering rules:
  1. Only affected survey numbers present in the survey universe count.
  2. A nondh's primary kind is the highest-priority kind among those numbers
     (s_no > block_no > re_survey_no).
  3. Nondhs with no counted survey number sort after all others.
  4. Otherwise compare kind priority, then the nondh number ascending.

Effective dates are never a sort key. Python's sort is stable, so ties keep
insertion order.
"""

import logging
from typing import Iterable, Optional, Union

from landrecord.config import TRACE_ENABLED
from landrecord.chain.models import ChainSnapshot, Nondh, SurveyKind, SurveyNumber, YearSlab
from landrecord.chain.utils import normalize_survey_number, split_survey_numbers

logger = logging.getLogger(__name__)


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


# ═══════════════════════════════════════════════════
# 1. SURVEY UNIVERSE
# ═══════════════════════════════════════════════════

# basic-info key → survey kind (snake_case and the register's camelCase spellings)
_BASIC_INFO_KEYS = [
    (("s_no", "sNo"), SurveyKind.PRIMARY),
    (("block_no", "blockNo"), SurveyKind.BLOCK),
    (("re_survey_no", "reSurveyNo"), SurveyKind.RESURVEY),
]


def build_survey_universe(
    basic_info: Optional[dict],
    year_slabs: Iterable[YearSlab] = (),
) -> tuple[SurveyNumber, ...]:
    """Collect the authoritative survey numbers of a land record.

    Sources: the basic-info survey numbers (each field may hold a comma
    separated list) and every survey number on a year slab or its paiky /
    consolidation entries. Duplicates (after normalization) keep the first
    occurrence.
    """
    seen: set[str] = set()
    universe: list[SurveyNumber] = []

    def _add(sn: SurveyNumber):
        key = sn.key
        if key and key not in seen:
            seen.add(key)
            universe.append(sn)

    for keys, kind in _BASIC_INFO_KEYS:
        raw = None
        for k in keys:
            if basic_info and basic_info.get(k):
                raw = basic_info[k]
                break
        if not raw:
            continue
        for number in split_survey_numbers(str(raw)):
            _add(SurveyNumber(number=number, kind=kind))

    for slab in year_slabs:
        for sn in slab.survey_numbers():
            _add(sn)

    _trace(f"Survey universe: {[s.number for s in universe]}")
    return tuple(universe)


def _universe_keys(universe: Iterable[Union[SurveyNumber, str]]) -> frozenset[str]:
    keys = set()
    for item in universe:
        keys.add(item.key if isinstance(item, SurveyNumber) else normalize_survey_number(item))
    return frozenset(keys)


# ═══════════════════════════════════════════════════
# 2. SORTING
# ═══════════════════════════════════════════════════

def filter_affected(nondh: Nondh, universe_keys: frozenset[str]) -> list[SurveyNumber]:
    """Affected survey numbers of ``nondh`` that exist in the universe."""
    return [sn for sn in nondh.affected_survey_numbers if sn.key in universe_keys]


def primary_kind(nondh: Nondh, universe_keys: frozenset[str]) -> Optional[SurveyKind]:
    """Highest-priority kind among the nondh's counted survey numbers, or None."""
    kinds = [sn.kind for sn in filter_affected(nondh, universe_keys)]
    if not kinds:
        return None
    return min(kinds, key=lambda k: k.priority)


def sort_nondhs(nondhs: Iterable[Nondh], universe) -> list[Nondh]:
    """Return nondhs in chain order.

    ``universe`` may be SurveyNumbers or raw number strings.
    """
    keys = _universe_keys(universe)

    def _sort_key(nondh: Nondh):
        kind = primary_kind(nondh, keys)
        if kind is None:
            return (1, 0, 0)
        return (0, kind.priority, nondh.number)

    ordered = sorted(nondhs, key=_sort_key)
    _trace(f"Sorted nondhs: {[n.number for n in ordered]}")
    return ordered


def ordered_nondhs(snapshot: ChainSnapshot) -> list[Nondh]:
    """Nondhs of a snapshot in chain order."""
    return sort_nondhs(snapshot.nondhs, snapshot.survey_universe)


def chain_positions(snapshot: ChainSnapshot) -> dict[str, int]:
    """Map nondh id → position in chain order."""
    return {n.id: i for i, n in enumerate(ordered_nondhs(snapshot))}
