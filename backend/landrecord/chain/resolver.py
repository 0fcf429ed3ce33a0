"""Mutation facade over a nondh chain snapshot.

Every operation takes a ChainSnapshot and returns a new one with validity
recomputed for the whole chain. A rejected mutation raises (usually a
ValidationError) and leaves the caller's snapshot untouched; when a
``notify`` callable is configured it receives the rejection message and the
maximum permissible area (None when no area limit is involved).
"""

import functools
import logging
from dataclasses import replace
from datetime import date
from typing import Callable, Optional, Union

from landrecord.chain.distribution import (
    with_added_relation,
    with_equal_distribution,
    with_relation_area,
    with_removed_relation,
    apply_equal_distribution,
    validate_distribution,
)
from landrecord.chain.errors import AreaDistributionError, ReferentialError, ValidationError
from landrecord.chain.models import (
    AffectedNondh,
    Area,
    ChainSnapshot,
    Nondh,
    NondhDetail,
    NondhStatus,
    NondhType,
)
from landrecord.chain.owners import get_max_date, get_min_date, get_previous_owners, is_valid_date_order
from landrecord.chain.utils import normalize_owner_name, parse_date
from landrecord.chain import validity

logger = logging.getLogger(__name__)

Notifier = Callable[[str, Optional[float]], None]


def _notify_on_rejection(method):
    """Report ValidationErrors to the configured notifier, then re-raise."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except ValidationError as e:
            maximum = e.maximum if isinstance(e, AreaDistributionError) else None
            logger.info(f"Rejected {method.__name__}: {e.message}")
            if self.notify is not None:
                try:
                    self.notify(e.message, maximum)
                except Exception as notify_err:
                    logger.error(f"Notifier failed: {notify_err}")
            raise
    return wrapper


def validate_detail(detail: NondhDetail) -> list[str]:
    """Messages for fields a detail must have before it is saved."""
    errors = []
    label = f"Detail {detail.id}"
    if detail.effective_date is None:
        errors.append(f"{label}: date is required")
    if detail.status == NondhStatus.INVALID and not detail.invalid_reason.strip():
        errors.append(f"{label}: reason is required when status is invalid")
    if detail.is_transfer and not detail.old_owner_name:
        errors.append(f"{label}: old owner is required for {detail.type.value} entries")
    if detail.order:
        for ann in detail.order.affected:
            if ann.status == NondhStatus.INVALID and not ann.invalid_reason.strip():
                errors.append(f"{label}: affected nondh reason is required when its status is invalid")
    return errors


class ChainResolver:
    """Applies edits to a chain snapshot and recomputes derived state."""

    def __init__(self, notify: Optional[Notifier] = None):
        self.notify = notify

    # ── Lookup helpers ──

    @staticmethod
    def _detail(snapshot: ChainSnapshot, detail_id: str) -> NondhDetail:
        detail = snapshot.get_detail(detail_id)
        if detail is None:
            raise ReferentialError(f"Detail {detail_id} not found", details={"detail_id": detail_id})
        return detail

    @staticmethod
    def _commit(snapshot: ChainSnapshot, detail: NondhDetail) -> ChainSnapshot:
        return validity.propagate_validity(snapshot.replace_detail(detail))

    # ── Whole chain ──

    def resolve(self, snapshot: ChainSnapshot) -> ChainSnapshot:
        """Recompute validity for a freshly loaded snapshot."""
        return validity.propagate_validity(snapshot)

    @_notify_on_rejection
    def add_nondh(self, snapshot: ChainSnapshot, nondh: Nondh, detail: NondhDetail) -> ChainSnapshot:
        if snapshot.get_nondh(nondh.id) is not None:
            raise ValidationError(f"Nondh {nondh.id} already exists", details={"nondh_id": nondh.id})
        if detail.nondh_id != nondh.id:
            raise ValidationError(
                f"Detail {detail.id} belongs to nondh {detail.nondh_id}, not {nondh.id}",
                details={"detail_id": detail.id, "nondh_id": nondh.id},
            )
        updated = replace(snapshot, nondhs=snapshot.nondhs + (nondh,), details=snapshot.details + (detail,))
        logger.info(f"Added nondh {nondh.number} ({detail.type.value})")
        return validity.propagate_validity(updated)

    def delete_nondh(self, snapshot: ChainSnapshot, nondh_id: str) -> ChainSnapshot:
        """Remove a nondh with its detail and relations."""
        if snapshot.get_nondh(nondh_id) is None:
            raise ReferentialError(f"Nondh {nondh_id} not found", details={"nondh_id": nondh_id})
        updated = replace(
            snapshot,
            nondhs=tuple(n for n in snapshot.nondhs if n.id != nondh_id),
            details=tuple(d for d in snapshot.details if d.nondh_id != nondh_id),
        )
        logger.info(f"Deleted nondh {nondh_id}")
        return validity.propagate_validity(updated)

    # ── Status & date ──

    @_notify_on_rejection
    def set_status(
        self,
        snapshot: ChainSnapshot,
        detail_id: str,
        status: Union[NondhStatus, str],
        reason: Optional[str] = None,
    ) -> ChainSnapshot:
        try:
            status = NondhStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid status '{status}'", details={"status": status})
        return validity.set_status(snapshot, detail_id, status, reason)

    @_notify_on_rejection
    def set_date(
        self,
        snapshot: ChainSnapshot,
        detail_id: str,
        value: Union[date, str, None],
    ) -> ChainSnapshot:
        """Set a detail's date; it must fall within its neighbours' bounds.

        The new date can select a different year slab, so the distribution is
        checked again against that slab's capacity.
        """
        detail = self._detail(snapshot, detail_id)
        new_date = parse_date(value)
        if value not in (None, "") and new_date is None:
            raise ValidationError(f"Unparseable date: {value!r}", details={"value": str(value)})
        if not is_valid_date_order(snapshot, detail.nondh_id, new_date):
            min_date = get_min_date(snapshot, detail.nondh_id)
            max_date = get_max_date(snapshot, detail.nondh_id)
            raise ValidationError(
                f"Date {new_date.isoformat()} is outside the allowed range "
                f"({min_date.isoformat() if min_date else 'open'} to "
                f"{max_date.isoformat() if max_date else 'open'})",
                details={
                    "min_date": min_date.isoformat() if min_date else None,
                    "max_date": max_date.isoformat() if max_date else None,
                },
            )
        updated = replace(detail, effective_date=new_date)
        updated = apply_equal_distribution(snapshot, updated)
        validate_distribution(snapshot, updated)
        return self._commit(snapshot, updated)

    # ── Owners & areas ──

    @_notify_on_rejection
    def set_old_owner(self, snapshot: ChainSnapshot, detail_id: str, owner_name: str) -> ChainSnapshot:
        """Pick the old owner of a transfer from the previous-owner pool."""
        detail = self._detail(snapshot, detail_id)
        name = normalize_owner_name(owner_name)
        if not detail.is_transfer and detail.type != NondhType.ORDER:
            raise ValidationError(
                f"Detail {detail_id}: {detail.type.value} entries have no old owner",
                details={"detail_id": detail_id},
            )
        pool = {o.name for o in get_previous_owners(snapshot, None, detail.nondh_id)}
        if name and pool and name not in pool:
            raise ValidationError(
                f"'{name}' is not a previous owner before this nondh",
                details={"detail_id": detail_id, "previous_owners": sorted(pool)},
            )
        updated = apply_equal_distribution(snapshot, replace(detail, old_owner=name))
        validate_distribution(snapshot, updated)
        return self._commit(snapshot, updated)

    @_notify_on_rejection
    def add_relation(
        self,
        snapshot: ChainSnapshot,
        detail_id: str,
        owner_name: str,
        area: Optional[Area] = None,
        relation_id: Optional[str] = None,
        **extra,
    ) -> ChainSnapshot:
        detail = self._detail(snapshot, detail_id)
        updated = with_added_relation(snapshot, detail, owner_name, area, relation_id, **extra)
        return self._commit(snapshot, updated)

    @_notify_on_rejection
    def remove_relation(self, snapshot: ChainSnapshot, detail_id: str, relation_id: str) -> ChainSnapshot:
        detail = self._detail(snapshot, detail_id)
        return self._commit(snapshot, with_removed_relation(snapshot, detail, relation_id))

    @_notify_on_rejection
    def update_relation_area(
        self,
        snapshot: ChainSnapshot,
        detail_id: str,
        relation_id: str,
        area: Area,
    ) -> ChainSnapshot:
        detail = self._detail(snapshot, detail_id)
        return self._commit(snapshot, with_relation_area(snapshot, detail, relation_id, area))

    @_notify_on_rejection
    def set_equal_distribution(self, snapshot: ChainSnapshot, detail_id: str, enabled: bool) -> ChainSnapshot:
        detail = self._detail(snapshot, detail_id)
        return self._commit(snapshot, with_equal_distribution(snapshot, detail, enabled))

    # ── Order annotations ──

    @_notify_on_rejection
    def set_affected(
        self,
        snapshot: ChainSnapshot,
        detail_id: str,
        affected: list[AffectedNondh],
    ) -> ChainSnapshot:
        return validity.set_affected(snapshot, detail_id, affected)

    @_notify_on_rejection
    def toggle_affected(self, snapshot: ChainSnapshot, detail_id: str, annotation_id: str) -> ChainSnapshot:
        return validity.toggle_affected_status(snapshot, detail_id, annotation_id)

    # ── Save gate ──

    @_notify_on_rejection
    def ensure_complete(self, snapshot: ChainSnapshot, detail_id: str) -> NondhDetail:
        """Raise ValidationError listing every missing field of a detail."""
        detail = self._detail(snapshot, detail_id)
        errors = validate_detail(detail)
        if errors:
            raise ValidationError("; ".join(errors), details={"detail_id": detail_id, "errors": errors})
        return detail
