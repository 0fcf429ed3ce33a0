"""Area distribution validation.

A transfer detail hands part of its old owner's holding to new owners. The
new-owner total may not exceed:
  - the old owner's remaining holding before this nondh
  - the capacity of the year slab covering the detail's date

Every detail, whatever its type, is also capped by the slab capacity over
the total of all its relations. All comparisons are in square meters.

Violations are never clamped: the caller gets an AreaDistributionError
with the largest value the edited relation could take instead.
"""

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import date
from typing import Iterable, Optional

from landrecord.config import TRACE_ENABLED
from landrecord.chain.areas import exceeds
from landrecord.chain.errors import AreaDistributionError, ReferentialError, ValidationError
from landrecord.chain.models import (
    Area,
    ChainSnapshot,
    Ganot,
    NondhDetail,
    NondhType,
    OwnerRelation,
    YearSlab,
)
from landrecord.chain.owners import get_previous_owner
from landrecord.chain.utils import normalize_owner_name

logger = logging.getLogger(__name__)


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


LIMIT_OLD_OWNER = "old_owner_remaining"
LIMIT_SLAB_NEW_OWNERS = "slab_capacity"
LIMIT_SLAB_TOTAL = "slab_capacity_total"


# ═══════════════════════════════════════════════════
# 1. LIMITS
# ═══════════════════════════════════════════════════

def year_slab_for(year_slabs: Iterable[YearSlab], on_date: Optional[date]) -> Optional[YearSlab]:
    """First slab whose year range covers ``on_date``."""
    if on_date is None:
        return None
    for slab in year_slabs:
        if slab.covers(on_date.year):
            return slab
    return None


def year_slab_capacity(year_slabs: Iterable[YearSlab], on_date: Optional[date]) -> Optional[float]:
    """Capacity in m² of the slab covering ``on_date``; None when no slab applies."""
    slab = year_slab_for(year_slabs, on_date)
    return slab.capacity_sqm if slab else None


def _caps_new_owners_by_slab(detail: NondhDetail) -> bool:
    if detail.is_transfer:
        return True
    return detail.type == NondhType.ORDER and detail.ganot is not None


def _caps_by_old_owner(detail: NondhDetail) -> bool:
    if detail.is_transfer:
        return True
    return detail.type == NondhType.ORDER and detail.ganot == Ganot.FIRST_RIGHT


def old_owner_remaining(snapshot: ChainSnapshot, detail: NondhDetail) -> Optional[float]:
    """Old owner's holding before this detail's nondh (0 if not in the pool).

    None when the detail does not draw from an old owner.
    """
    if not _caps_by_old_owner(detail) or not detail.old_owner_name:
        return None
    owner = get_previous_owner(snapshot, detail.nondh_id, detail.old_owner_name)
    return owner.remaining_area if owner else 0.0


@dataclass
class DistributionCheck:
    """Outcome of validating one detail's distribution."""
    ok: bool
    maximum: Optional[float]
    new_owner_total: float
    total: float
    old_owner_remaining: Optional[float] = None
    slab_capacity: Optional[float] = None
    violated: Optional[str] = None
    message: str = ""

    def to_dict(self) -> dict:
        def _r(v):
            return round(v, 4) if v is not None else None
        return {
            "ok": self.ok,
            "maximum": _r(self.maximum),
            "new_owner_total": _r(self.new_owner_total),
            "total": _r(self.total),
            "old_owner_remaining": _r(self.old_owner_remaining),
            "slab_capacity": _r(self.slab_capacity),
            "violated": self.violated,
            "message": self.message,
        }


def check_distribution(
    snapshot: ChainSnapshot,
    detail: NondhDetail,
    relation_id: Optional[str] = None,
) -> DistributionCheck:
    """Check a detail's relation areas against every limit that applies.

    ``relation_id`` names the relation being edited; ``maximum`` is then the
    largest area that relation may hold with the others unchanged. Without
    it, ``maximum`` is the largest permissible total.
    """
    remaining = old_owner_remaining(snapshot, detail)
    capacity = year_slab_capacity(snapshot.year_slabs, detail.effective_date)

    new_owner_ids = {r.id for r in detail.new_owner_relations()}
    new_total = detail.new_owner_total_sqm()
    total = sum(r.area.square_meters for r in detail.owner_relations)

    # (name, limit, scope ids, scope total)
    limits = []
    if remaining is not None:
        limits.append((LIMIT_OLD_OWNER, remaining, new_owner_ids, new_total))
    if capacity is not None:
        if _caps_new_owners_by_slab(detail):
            limits.append((LIMIT_SLAB_NEW_OWNERS, capacity, new_owner_ids, new_total))
        limits.append((LIMIT_SLAB_TOTAL, capacity, {r.id for r in detail.owner_relations}, total))

    edited = detail.get_relation(relation_id) if relation_id else None
    edited_sqm = edited.area.square_meters if edited else 0.0

    violated = None
    message = ""
    maximum = None
    for name, limit, scope, scope_total in limits:
        if violated is None and exceeds(scope_total, limit):
            violated = name
            message = _violation_message(name, scope_total, limit)
        if relation_id is None:
            candidate = limit
        elif relation_id in scope:
            candidate = limit - (scope_total - edited_sqm)
        else:
            continue
        maximum = candidate if maximum is None else min(maximum, candidate)
    if maximum is not None:
        maximum = max(0.0, maximum)

    _trace(
        f"Distribution detail {detail.id}: new={new_total:.2f} total={total:.2f} "
        f"remaining={remaining} capacity={capacity} → {violated or 'ok'}"
    )
    return DistributionCheck(
        ok=violated is None,
        maximum=maximum,
        new_owner_total=new_total,
        total=total,
        old_owner_remaining=remaining,
        slab_capacity=capacity,
        violated=violated,
        message=message,
    )


def _violation_message(limit_name: str, amount: float, limit: float) -> str:
    if limit_name == LIMIT_OLD_OWNER:
        return (
            f"New owners' total area ({amount:.2f} m²) exceeds the old owner's "
            f"remaining area ({limit:.2f} m²)"
        )
    if limit_name == LIMIT_SLAB_NEW_OWNERS:
        return f"New owners' total area ({amount:.2f} m²) exceeds the year slab area ({limit:.2f} m²)"
    return f"Total area ({amount:.2f} m²) exceeds the year slab area ({limit:.2f} m²)"


def validate_distribution(
    snapshot: ChainSnapshot,
    detail: NondhDetail,
    relation_id: Optional[str] = None,
) -> DistributionCheck:
    """Like check_distribution, but raise AreaDistributionError on violation."""
    result = check_distribution(snapshot, detail, relation_id)
    if not result.ok:
        raise AreaDistributionError(
            f"{result.message}. Maximum allowed: {result.maximum or 0:.2f} m²",
            maximum=result.maximum or 0.0,
            limit=result.violated,
            details={"detail_id": detail.id, "relation_id": relation_id},
        )
    return result


# ═══════════════════════════════════════════════════
# 2. EQUAL DISTRIBUTION
# ═══════════════════════════════════════════════════

def equal_share(snapshot: ChainSnapshot, detail: NondhDetail) -> Optional[float]:
    """min(old-owner remaining, slab capacity) split over the new owners.

    None when there are no new owners or neither limit is known.
    """
    count = len(detail.new_owner_relations())
    if count == 0:
        return None
    bounds = [
        b for b in (
            old_owner_remaining(snapshot, detail),
            year_slab_capacity(snapshot.year_slabs, detail.effective_date),
        ) if b is not None
    ]
    if not bounds:
        return None
    return min(bounds) / count


def apply_equal_distribution(snapshot: ChainSnapshot, detail: NondhDetail) -> NondhDetail:
    """Give every new owner the equal share when the mode is on."""
    if not detail.equal_distribution:
        return detail
    share = equal_share(snapshot, detail)
    if share is None:
        return detail
    new_ids = {r.id for r in detail.new_owner_relations()}
    relations = tuple(
        replace(r, area=Area.sq_m(share)) if r.id in new_ids else r
        for r in detail.owner_relations
    )
    _trace(f"Equal distribution detail {detail.id}: {len(new_ids)} owners × {share:.2f} m²")
    return replace(detail, owner_relations=relations)


# ═══════════════════════════════════════════════════
# 3. RELATION EDITS
# ═══════════════════════════════════════════════════

def _require_relation(detail: NondhDetail, relation_id: str) -> OwnerRelation:
    rel = detail.get_relation(relation_id)
    if rel is None:
        raise ReferentialError(
            f"Relation {relation_id} not found on detail {detail.id}",
            details={"detail_id": detail.id, "relation_id": relation_id},
        )
    return rel


def default_relation_area(snapshot: ChainSnapshot, detail: NondhDetail, owner_name: str = "") -> Area:
    """Area still unallocated on this detail for a new relation.

    Bounded by the slab capacity left over and, for a new owner of a
    transfer, by the old owner's remaining holding. 0 when neither applies.
    """
    bounds = []
    capacity = year_slab_capacity(snapshot.year_slabs, detail.effective_date)
    if capacity is not None:
        bounds.append(capacity - sum(r.area.square_meters for r in detail.owner_relations))
    remaining = old_owner_remaining(snapshot, detail)
    if remaining is not None and normalize_owner_name(owner_name) != detail.old_owner_name:
        bounds.append(remaining - detail.new_owner_total_sqm())
    if not bounds:
        return Area.sq_m(0)
    return Area.sq_m(max(0.0, min(bounds)))


def with_relation_area(
    snapshot: ChainSnapshot,
    detail: NondhDetail,
    relation_id: str,
    area: Area,
) -> NondhDetail:
    """Set one relation's area; reject it when a limit would be exceeded."""
    if detail.equal_distribution and relation_id in {r.id for r in detail.new_owner_relations()}:
        raise ValidationError(
            f"Detail {detail.id}: areas are distributed equally; turn equal distribution off first",
            details={"detail_id": detail.id, "relation_id": relation_id},
        )
    rel = _require_relation(detail, relation_id)
    candidate = replace(
        detail,
        owner_relations=tuple(
            replace(rel, area=area) if r.id == relation_id else r for r in detail.owner_relations
        ),
    )
    validate_distribution(snapshot, candidate, relation_id)
    return candidate


def with_added_relation(
    snapshot: ChainSnapshot,
    detail: NondhDetail,
    owner_name: str,
    area: Optional[Area] = None,
    relation_id: Optional[str] = None,
    **extra,
) -> NondhDetail:
    """Append an owner relation, redistributing when equal distribution is on."""
    relation = OwnerRelation(
        id=relation_id or uuid.uuid4().hex,
        owner_name=owner_name,
        area=area if area is not None else default_relation_area(snapshot, detail, owner_name),
        **extra,
    )
    if detail.get_relation(relation.id) is not None:
        raise ValidationError(
            f"Relation {relation.id} already exists on detail {detail.id}",
            details={"detail_id": detail.id, "relation_id": relation.id},
        )
    candidate = replace(detail, owner_relations=detail.owner_relations + (relation,))
    candidate = apply_equal_distribution(snapshot, candidate)
    validate_distribution(snapshot, candidate, relation.id)
    return candidate


def with_removed_relation(snapshot: ChainSnapshot, detail: NondhDetail, relation_id: str) -> NondhDetail:
    """Drop an owner relation, redistributing when equal distribution is on."""
    _require_relation(detail, relation_id)
    candidate = replace(
        detail,
        owner_relations=tuple(r for r in detail.owner_relations if r.id != relation_id),
    )
    return apply_equal_distribution(snapshot, candidate)


def with_equal_distribution(snapshot: ChainSnapshot, detail: NondhDetail, enabled: bool) -> NondhDetail:
    """Switch equal distribution on or off; switching on redistributes at once."""
    candidate = replace(detail, equal_distribution=bool(enabled))
    return apply_equal_distribution(snapshot, candidate)
