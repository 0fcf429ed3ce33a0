"""Chain resolution endpoints over a posted snapshot (nothing is stored)."""

import logging
from dataclasses import replace
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from landrecord.chain import (
    ChainError,
    ChainIntegrityError,
    ChainSnapshot,
    ReferentialError,
    ValidationError,
    YearSlab,
    build_passbook,
    build_survey_universe,
    check_distribution,
    get_ganot_owners,
    get_max_date,
    get_min_date,
    get_previous_owners,
    ordered_nondhs,
    propagate_validity,
    run_chain_checks,
    summarize_passbook,
)
from landrecord.chain.distribution import year_slab_for
from landrecord.chain.utils import parse_date

router = APIRouter()
logger = logging.getLogger(__name__)


class SnapshotRequest(BaseModel):
    snapshot: dict
    basic_info: Optional[dict] = None


class PreviousOwnersRequest(SnapshotRequest):
    nondh_id: str
    survey_number: Optional[str] = None


class GanotOwnersRequest(SnapshotRequest):
    nondh_id: str
    ganot: str
    survey_number: Optional[str] = None


class DistributionRequest(SnapshotRequest):
    detail_id: str
    relation_id: Optional[str] = None


class PassbookRequest(SnapshotRequest):
    survey_number: Optional[str] = None


def raise_http(e: Exception):
    """Translate chain errors into HTTPExceptions."""
    if isinstance(e, ValidationError):
        raise HTTPException(status_code=422, detail=e.to_dict())
    if isinstance(e, ReferentialError):
        raise HTTPException(status_code=404, detail=e.to_dict())
    if isinstance(e, ChainIntegrityError):
        raise HTTPException(status_code=409, detail=e.to_dict())
    if isinstance(e, ChainError):
        raise HTTPException(status_code=400, detail=e.to_dict())
    raise e


def _snapshot_from(request: SnapshotRequest) -> ChainSnapshot:
    """Decode the posted snapshot and recompute validity.

    When basic info is posted, the survey universe is rebuilt from it and
    the year slabs instead of taken from the snapshot.
    """
    try:
        snapshot = ChainSnapshot.from_dict(request.snapshot)
        if request.basic_info is not None:
            universe = build_survey_universe(request.basic_info, snapshot.year_slabs)
            snapshot = replace(snapshot, survey_universe=universe)
        return propagate_validity(snapshot)
    except (KeyError, TypeError) as e:
        raise HTTPException(status_code=422, detail=f"Malformed snapshot: {e}")
    except ChainError as e:
        raise_http(e)


@router.post("/resolve")
async def resolve_chain(request: SnapshotRequest):
    """Order the chain, recompute validity and run the chain checks."""
    snapshot = _snapshot_from(request)
    checks = run_chain_checks(snapshot)
    logger.info(f"Resolved chain: {len(snapshot.nondhs)} nondhs, {len(checks)} check(s)")
    return {
        "snapshot": snapshot.to_dict(),
        "order": [n.id for n in ordered_nondhs(snapshot)],
        "checks": checks,
    }


@router.post("/previous-owners")
async def previous_owners(request: PreviousOwnersRequest):
    """Owner pool and date bounds for one nondh."""
    snapshot = _snapshot_from(request)
    try:
        owners = get_previous_owners(snapshot, request.survey_number, request.nondh_id)
        min_date = get_min_date(snapshot, request.nondh_id)
        max_date = get_max_date(snapshot, request.nondh_id)
    except ChainError as e:
        raise_http(e)
    return {
        "owners": [o.to_dict() for o in owners],
        "min_date": min_date.isoformat() if min_date else None,
        "max_date": max_date.isoformat() if max_date else None,
    }


@router.post("/ganot-owners")
async def ganot_owners(request: GanotOwnersRequest):
    """Owner pools for a first-right or second-right order."""
    snapshot = _snapshot_from(request)
    try:
        result = get_ganot_owners(snapshot, request.nondh_id, request.ganot, request.survey_number)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Unknown ganot: {request.ganot}")
    except ChainError as e:
        raise_http(e)
    if isinstance(result, list):
        return {"owners": [o.to_dict() for o in result]}
    return result.to_dict()


@router.post("/validate-distribution")
async def validate_distribution(request: DistributionRequest):
    """Check one detail's owner areas without rejecting anything."""
    snapshot = _snapshot_from(request)
    detail = snapshot.get_detail(request.detail_id)
    if detail is None:
        raise HTTPException(status_code=404, detail=f"Detail not found: {request.detail_id}")
    try:
        result = check_distribution(snapshot, detail, request.relation_id)
    except ChainError as e:
        raise_http(e)
    return result.to_dict()


@router.post("/passbook")
async def passbook(request: PassbookRequest):
    """Year-by-year ledger of valid holdings."""
    snapshot = _snapshot_from(request)
    rows = build_passbook(snapshot, request.survey_number)
    return {
        "rows": [r.to_dict() for r in rows],
        "summary": summarize_passbook(rows),
    }


@router.post("/year-slab")
async def year_slab_capacity_for(request: SnapshotRequest, on_date: str):
    """Capacity of the year slab covering a date."""
    snapshot = _snapshot_from(request)
    parsed = parse_date(on_date)
    if parsed is None:
        raise HTTPException(status_code=422, detail=f"Unparseable date: {on_date}")
    slab: Optional[YearSlab] = year_slab_for(snapshot.year_slabs, parsed)
    return {
        "date": parsed.isoformat(),
        "slab_id": slab.id if slab else None,
        "capacity": round(slab.capacity_sqm, 4) if slab else None,
    }
