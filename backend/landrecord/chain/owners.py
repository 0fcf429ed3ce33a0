"""Previous-owner resolution and date bounds.

Walks the nondhs that precede a given nondh in chain order and builds the
pool of owners a later transfer may draw from, with each owner's most
recent known holding in square meters.

Nondhs are skipped by their *status* (INVALID / NULLIFIED), not by the
derived ``is_valid`` flag of their relations. A nondh whose own status is
VALID stays in the pool even when a later invalidation has marked its
relations invalid.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Iterable, Optional

from landrecord.config import TRACE_ENABLED
from landrecord.chain.errors import ReferentialError
from landrecord.chain.models import (
    AreaUnit,
    ChainSnapshot,
    Ganot,
    Nondh,
    NondhDetail,
    NondhStatus,
    NondhType,
    OWNER_POOL_TYPES,
)
from landrecord.chain.ordering import filter_affected, ordered_nondhs
from landrecord.chain.utils import normalize_owner_name, normalize_survey_number

logger = logging.getLogger(__name__)


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


_SKIPPED_STATUSES = (NondhStatus.INVALID, NondhStatus.NULLIFIED)


@dataclass(frozen=True)
class PreviousOwner:
    """An owner's most recent known holding before some nondh."""
    name: str
    remaining_area: float  # m²
    unit: AreaUnit
    nondh_id: str
    nondh_type: NondhType
    is_old_owner: bool = False
    survey_number: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "remaining_area": round(self.remaining_area, 4),
            "unit": self.unit.value,
            "nondh_id": self.nondh_id,
            "nondh_type": self.nondh_type.value,
            "is_old_owner": self.is_old_owner,
            "survey_number": self.survey_number,
        }


@dataclass
class GanotPool:
    """Owner pools offered to a first-right order."""
    old_owners: list[PreviousOwner] = field(default_factory=list)
    new_owners: list[PreviousOwner] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "old_owners": [o.to_dict() for o in self.old_owners],
            "new_owners": [o.to_dict() for o in self.new_owners],
        }


# ═══════════════════════════════════════════════════
# 1. CHAIN WALK
# ═══════════════════════════════════════════════════

def prior_nondhs(snapshot: ChainSnapshot, nondh_id: str) -> list[Nondh]:
    """Nondhs strictly before ``nondh_id`` in chain order."""
    ordered = ordered_nondhs(snapshot)
    for i, nondh in enumerate(ordered):
        if nondh.id == nondh_id:
            return ordered[:i]
    raise ReferentialError(f"Nondh {nondh_id} not found", details={"nondh_id": nondh_id})


def _display_survey_number(snapshot: ChainSnapshot, nondh: Nondh) -> Optional[str]:
    counted = filter_affected(nondh, snapshot.universe_keys)
    if counted:
        return counted[0].number
    if nondh.affected_survey_numbers:
        return nondh.affected_survey_numbers[0].number
    return None


def _affects_survey(nondh: Nondh, survey_key: str) -> bool:
    return any(sn.key == survey_key for sn in nondh.affected_survey_numbers)


def _last_relation_area(
    snapshot: ChainSnapshot,
    before: list[Nondh],
    owner_name: str,
) -> float:
    """Area of the most recent relation named ``owner_name`` among ``before``."""
    for nondh in reversed(before):
        detail = snapshot.detail_for(nondh.id)
        if not detail or detail.status in _SKIPPED_STATUSES:
            continue
        for rel in detail.owner_relations:
            if rel.name == owner_name:
                return rel.area.square_meters
    return 0.0


def _build_pool(
    snapshot: ChainSnapshot,
    nondh_id: str,
    survey_number: Optional[str] = None,
    types: Optional[Iterable[NondhType]] = None,
    exclude: Optional[Callable[[NondhDetail], bool]] = None,
) -> dict[str, PreviousOwner]:
    """Walk prior nondhs and return owner name → latest holding.

    Transfer details with an old owner reduce that owner's prior holding by
    the total given to new owners (floored at zero). Every other named
    relation overwrites the owner's holding.
    """
    allowed = frozenset(types) if types is not None else None
    survey_key = normalize_survey_number(survey_number) if survey_number else ""
    prior = prior_nondhs(snapshot, nondh_id)
    pool: dict[str, PreviousOwner] = {}

    for i, nondh in enumerate(prior):
        detail = snapshot.detail_for(nondh.id)
        if detail is None or detail.status in _SKIPPED_STATUSES:
            continue
        if allowed is not None and detail.type not in allowed:
            continue
        if exclude is not None and exclude(detail):
            continue
        if survey_key and nondh.affected_survey_numbers and not _affects_survey(nondh, survey_key):
            continue

        shown_sn = _display_survey_number(snapshot, nondh)
        old_name = detail.old_owner_name
        if detail.is_transfer and old_name:
            if old_name in pool:
                held = pool[old_name].remaining_area
            else:
                held = _last_relation_area(snapshot, prior[:i], old_name)
            remaining = max(0.0, held - detail.new_owner_total_sqm())
            unit = detail.owner_relations[0].area.unit if detail.owner_relations else AreaUnit.SQ_M
            pool[old_name] = PreviousOwner(
                name=old_name,
                remaining_area=remaining,
                unit=unit,
                nondh_id=nondh.id,
                nondh_type=detail.type,
                is_old_owner=True,
                survey_number=shown_sn,
            )
            _trace(f"Nondh {nondh.number}: old owner '{old_name}' {held:.2f} → {remaining:.2f} m²")

        for rel in detail.new_owner_relations():
            pool[rel.name] = PreviousOwner(
                name=rel.name,
                remaining_area=rel.area.square_meters,
                unit=rel.area.unit,
                nondh_id=nondh.id,
                nondh_type=detail.type,
                survey_number=shown_sn,
            )
    return pool


# ═══════════════════════════════════════════════════
# 2. PREVIOUS OWNERS & GANOT POOLS
# ═══════════════════════════════════════════════════

def get_previous_owners(
    snapshot: ChainSnapshot,
    survey_number: Optional[str],
    nondh_id: str,
) -> list[PreviousOwner]:
    """Owners known before ``nondh_id``, with their remaining holding in m².

    When ``survey_number`` is given, nondhs that list affected survey numbers
    contribute only if one of them is that number.
    """
    pool = _build_pool(snapshot, nondh_id, survey_number, types=OWNER_POOL_TYPES)
    logger.debug(f"Previous owners for nondh {nondh_id}: {len(pool)}")
    return list(pool.values())


def get_previous_owner(
    snapshot: ChainSnapshot,
    nondh_id: str,
    owner_name: str,
    survey_number: Optional[str] = None,
) -> Optional[PreviousOwner]:
    """The pool entry for ``owner_name`` before ``nondh_id``, or None."""
    name = normalize_owner_name(owner_name)
    for owner in get_previous_owners(snapshot, survey_number, nondh_id):
        if owner.name == name:
            return owner
    return None


def _is_second_right_order(detail: NondhDetail) -> bool:
    return detail.type == NondhType.ORDER and detail.ganot == Ganot.SECOND_RIGHT


def get_ganot_owners(
    snapshot: ChainSnapshot,
    nondh_id: str,
    ganot: Ganot,
    survey_number: Optional[str] = None,
):
    """Owners offered to an order with the given ganot.

    SECOND_RIGHT returns a list: every prior owner, old owners only while
    they still hold area. FIRST_RIGHT returns a GanotPool: old owners from
    everything except second-right orders, new owners from prior VALID
    second-right orders.
    """
    ganot = Ganot(ganot)
    if ganot == Ganot.SECOND_RIGHT:
        pool = _build_pool(snapshot, nondh_id, survey_number)
        return [o for o in pool.values() if not o.is_old_owner or o.remaining_area > 0]

    old_pool = _build_pool(snapshot, nondh_id, survey_number, exclude=_is_second_right_order)
    result = GanotPool(
        old_owners=[o for o in old_pool.values() if not o.is_old_owner or o.remaining_area > 0],
    )

    new_pool: dict[str, PreviousOwner] = {}
    for nondh in prior_nondhs(snapshot, nondh_id):
        detail = snapshot.detail_for(nondh.id)
        if detail is None or not _is_second_right_order(detail) or detail.status != NondhStatus.VALID:
            continue
        shown_sn = _display_survey_number(snapshot, nondh)
        for rel in detail.named_relations():
            new_pool[rel.name] = PreviousOwner(
                name=rel.name,
                remaining_area=rel.area.square_meters,
                unit=rel.area.unit,
                nondh_id=nondh.id,
                nondh_type=detail.type,
                survey_number=shown_sn,
            )
    result.new_owners = list(new_pool.values())
    return result


# ═══════════════════════════════════════════════════
# 3. DATE BOUNDS
# ═══════════════════════════════════════════════════

def _neighbour_date(snapshot: ChainSnapshot, nondh_id: str, offset: int) -> Optional[date]:
    ordered = ordered_nondhs(snapshot)
    index = next((i for i, n in enumerate(ordered) if n.id == nondh_id), None)
    if index is None:
        raise ReferentialError(f"Nondh {nondh_id} not found", details={"nondh_id": nondh_id})
    neighbour = index + offset
    if neighbour < 0 or neighbour >= len(ordered):
        return None
    detail = snapshot.detail_for(ordered[neighbour].id)
    if detail is None or detail.effective_date is None:
        return None
    return detail.effective_date + timedelta(days=-offset)


def get_min_date(snapshot: ChainSnapshot, nondh_id: str) -> Optional[date]:
    """Earliest allowed date: the preceding nondh's date plus one day."""
    return _neighbour_date(snapshot, nondh_id, -1)


def get_max_date(snapshot: ChainSnapshot, nondh_id: str) -> Optional[date]:
    """Latest allowed date: the following nondh's date minus one day."""
    return _neighbour_date(snapshot, nondh_id, 1)


def is_valid_date_order(snapshot: ChainSnapshot, nondh_id: str, value: Optional[date]) -> bool:
    """True when ``value`` lies within the nondh's min/max date bounds (inclusive)."""
    if value is None:
        return True
    min_date = get_min_date(snapshot, nondh_id)
    max_date = get_max_date(snapshot, nondh_id)
    if min_date and value < min_date:
        return False
    if max_date and value > max_date:
        return False
    return True
