"""Validity propagation across the nondh chain.

A nondh's owner relations are valid when an even number of *later* nondhs
(in chain order) have status INVALID. Invalidating an invalidation restores
validity; an odd count suppresses it. A nondh that is itself INVALID has
invalid relations regardless of the count. The derived ``is_valid`` flag is
recomputed for the whole chain after every status change, addition or
removal.

Order (Hukam) details can annotate other nondhs they affect. Those
annotations carry their own status and invalid reason:
  - the reason of an INVALID annotation is copied onto the target detail
    when the target is INVALID (last write wins)
  - toggling an annotation flips the target's own status
"""

import logging
from dataclasses import replace
from typing import Optional

from landrecord.config import TRACE_ENABLED
from landrecord.chain.errors import ChainIntegrityError, ReferentialError, ValidationError
from landrecord.chain.models import (
    AffectedNondh,
    ChainSnapshot,
    NondhDetail,
    NondhStatus,
    NondhType,
    OrderDetails,
)
from landrecord.chain.ordering import ordered_nondhs

logger = logging.getLogger(__name__)


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


# ═══════════════════════════════════════════════════
# 1. AFFECTS GRAPH
# ═══════════════════════════════════════════════════

def affects_graph(snapshot: ChainSnapshot) -> dict[str, list[str]]:
    """Map nondh id → ids of nondhs its order annotations point to.

    Annotations pointing at a missing nondh are dropped with a warning.
    """
    graph: dict[str, list[str]] = {}
    for detail in snapshot.details:
        if not detail.order or not detail.order.affected:
            continue
        targets = []
        for ann in detail.order.affected:
            if snapshot.get_nondh(ann.target_nondh_id) is None:
                logger.warning(
                    f"Detail {detail.id}: affected annotation {ann.id} references "
                    f"missing nondh {ann.target_nondh_id!r}, skipping"
                )
                continue
            targets.append(ann.target_nondh_id)
        graph.setdefault(detail.nondh_id, []).extend(targets)
    return graph


def find_affects_cycle(snapshot: ChainSnapshot) -> Optional[list[str]]:
    """Return the nondh ids forming a cycle in the affects graph, or None."""
    graph = affects_graph(snapshot)
    WHITE, GREY, BLACK = 0, 1, 2
    colour = {node: WHITE for node in graph}

    for start in graph:
        if colour[start] != WHITE:
            continue
        # Iterative DFS: stack of (node, iterator over its targets)
        path = [start]
        stack = [(start, iter(graph.get(start, [])))]
        colour[start] = GREY
        while stack:
            node, targets = stack[-1]
            nxt = next(targets, None)
            if nxt is None:
                colour[node] = BLACK
                stack.pop()
                path.pop()
                continue
            state = colour.get(nxt, WHITE)
            if state == GREY:
                return path[path.index(nxt):] + [nxt]
            if state == WHITE:
                colour[nxt] = GREY
                path.append(nxt)
                stack.append((nxt, iter(graph.get(nxt, []))))
    return None


def check_affects_acyclic(snapshot: ChainSnapshot) -> None:
    cycle = find_affects_cycle(snapshot)
    if cycle:
        raise ChainIntegrityError(
            f"Cyclic affected-nondh references: {' -> '.join(cycle)}",
            details={"cycle": cycle},
        )


# ═══════════════════════════════════════════════════
# 2. PARITY PROPAGATION
# ═══════════════════════════════════════════════════

def later_invalid_counts(snapshot: ChainSnapshot) -> dict[str, int]:
    """Map nondh id → number of later nondhs whose detail status is INVALID."""
    ordered = ordered_nondhs(snapshot)
    counts: dict[str, int] = {}
    running = 0
    for nondh in reversed(ordered):
        counts[nondh.id] = running
        detail = snapshot.detail_for(nondh.id)
        if detail and detail.status == NondhStatus.INVALID:
            running += 1
    return counts


def propagate_validity(snapshot: ChainSnapshot) -> ChainSnapshot:
    """Recompute ``is_valid`` on every owner relation of the chain.

    Two rules combine here. The parity rule: relations are valid when the
    number of later INVALID nondhs is even. The own-status rule: a nondh
    whose own status is INVALID never has valid relations, even with an even
    count. Parity alone would list the owners of a cancelled (Radd) entry in
    the passbook, so both rules apply.

    Raises ChainIntegrityError for a corrupt snapshot (duplicate ids, cyclic
    affects graph) instead of returning a partial result.
    """
    snapshot.check_integrity()
    check_affects_acyclic(snapshot)

    counts = later_invalid_counts(snapshot)
    details = []
    for detail in snapshot.details:
        should_be_valid = (
            counts.get(detail.nondh_id, 0) % 2 == 0 and detail.status != NondhStatus.INVALID
        )
        relations = tuple(
            r if r.is_valid == should_be_valid else replace(r, is_valid=should_be_valid)
            for r in detail.owner_relations
        )
        if relations != detail.owner_relations:
            _trace(
                f"Detail {detail.id}: {counts.get(detail.nondh_id, 0)} later invalid → "
                f"relations {'valid' if should_be_valid else 'invalid'}"
            )
            detail = replace(detail, owner_relations=relations)
        details.append(detail)
    return snapshot.with_details(details)


# ═══════════════════════════════════════════════════
# 3. STATUS CHANGES
# ═══════════════════════════════════════════════════

def with_status(detail: NondhDetail, status: NondhStatus, reason: Optional[str] = None) -> NondhDetail:
    """Return ``detail`` with a new status; leaving INVALID clears the reason."""
    if status == NondhStatus.INVALID:
        new_reason = detail.invalid_reason if reason is None else reason
    else:
        new_reason = ""
    return replace(detail, status=status, invalid_reason=new_reason)


def set_status(
    snapshot: ChainSnapshot,
    detail_id: str,
    status: NondhStatus,
    reason: Optional[str] = None,
) -> ChainSnapshot:
    """Change one detail's status and recompute validity for the chain.

    Marking a detail INVALID needs a reason, given here or already on the
    detail; otherwise the change is rejected with a ValidationError.
    """
    detail = snapshot.get_detail(detail_id)
    if detail is None:
        raise ReferentialError(f"Detail {detail_id} not found", details={"detail_id": detail_id})
    updated = with_status(detail, NondhStatus(status), reason)
    if updated.status == NondhStatus.INVALID and not updated.invalid_reason.strip():
        raise ValidationError(
            f"Detail {detail_id}: reason is required when status is invalid",
            details={"detail_id": detail_id},
        )
    logger.info(f"Detail {detail_id}: status {detail.status.value} → {updated.status.value}")
    snapshot = snapshot.replace_detail(updated)
    if updated.type == NondhType.ORDER:
        snapshot = apply_affected_reasons(snapshot, detail_id)
    return propagate_validity(snapshot)


# ═══════════════════════════════════════════════════
# 4. AFFECTED-NONDH ANNOTATIONS
# ═══════════════════════════════════════════════════

def _order_detail(snapshot: ChainSnapshot, detail_id: str) -> NondhDetail:
    detail = snapshot.get_detail(detail_id)
    if detail is None:
        raise ReferentialError(f"Detail {detail_id} not found", details={"detail_id": detail_id})
    if detail.type != NondhType.ORDER:
        raise ValidationError(
            f"Detail {detail_id} is {detail.type.value}; only {NondhType.ORDER.value} entries affect other nondhs",
            details={"detail_id": detail_id},
        )
    return detail


def apply_affected_reasons(snapshot: ChainSnapshot, detail_id: str) -> ChainSnapshot:
    """Copy reasons of INVALID annotations onto their targets when the target is INVALID."""
    detail = _order_detail(snapshot, detail_id)
    if not detail.order:
        return snapshot
    for ann in detail.order.affected:
        if ann.status != NondhStatus.INVALID or not ann.invalid_reason:
            continue
        target = snapshot.detail_for(ann.target_nondh_id)
        if target is None:
            logger.warning(
                f"Detail {detail_id}: annotation {ann.id} target {ann.target_nondh_id!r} "
                f"has no detail, skipping"
            )
            continue
        if target.status == NondhStatus.INVALID and target.invalid_reason != ann.invalid_reason:
            _trace(f"Reason '{ann.invalid_reason}' copied to detail {target.id}")
            snapshot = snapshot.replace_detail(replace(target, invalid_reason=ann.invalid_reason))
    return snapshot


def set_affected(
    snapshot: ChainSnapshot,
    detail_id: str,
    affected: list[AffectedNondh],
) -> ChainSnapshot:
    """Replace an order's annotation list, copy reasons and recompute validity."""
    detail = _order_detail(snapshot, detail_id)
    for ann in affected:
        if ann.target_nondh_id == detail.nondh_id:
            raise ChainIntegrityError(
                f"Detail {detail_id}: an order cannot affect its own nondh",
                details={"detail_id": detail_id},
            )
        if ann.status == NondhStatus.INVALID and not ann.invalid_reason.strip():
            raise ValidationError(
                f"Affected annotation {ann.id}: reason is required when status is invalid",
                details={"annotation_id": ann.id},
            )
    if detail.order:
        order = replace(detail.order, affected=tuple(affected))
    else:
        order = OrderDetails(affected=tuple(affected))
    snapshot = snapshot.replace_detail(replace(detail, order=order))
    check_affects_acyclic(snapshot)
    snapshot = apply_affected_reasons(snapshot, detail_id)
    return propagate_validity(snapshot)


def toggle_affected_status(snapshot: ChainSnapshot, detail_id: str, annotation_id: str) -> ChainSnapshot:
    """Flip the target nondh of an annotation between INVALID and VALID.

    When the target becomes INVALID it takes the order's own invalid reason;
    the annotation mirrors the new status.
    """
    detail = _order_detail(snapshot, detail_id)
    annotations = detail.order.affected if detail.order else ()
    ann = next((a for a in annotations if a.id == annotation_id), None)
    if ann is None:
        raise ReferentialError(
            f"Annotation {annotation_id} not found on detail {detail_id}",
            details={"detail_id": detail_id, "annotation_id": annotation_id},
        )
    target = snapshot.detail_for(ann.target_nondh_id)
    if target is None:
        raise ReferentialError(
            f"Affected nondh {ann.target_nondh_id} has no detail",
            details={"nondh_id": ann.target_nondh_id},
        )

    new_status = NondhStatus.VALID if target.status == NondhStatus.INVALID else NondhStatus.INVALID
    reason = detail.invalid_reason if new_status == NondhStatus.INVALID else ""
    snapshot = snapshot.replace_detail(with_status(target, new_status, reason))

    new_ann = replace(ann, status=new_status, invalid_reason=reason)
    order = replace(detail.order, affected=tuple(new_ann if a.id == ann.id else a for a in annotations))
    snapshot = snapshot.replace_detail(replace(snapshot.get_detail(detail_id), order=order))
    logger.info(
        f"Detail {detail_id}: toggled affected nondh {ann.target_nondh_id} → {new_status.value}"
    )
    return propagate_validity(snapshot)
