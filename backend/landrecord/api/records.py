"""Stored land record endpoints: load, edit through the resolver, save."""

import logging
from typing import Optional, Union

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from landrecord.api.chain import raise_http
from landrecord.chain import (
    AffectedNondh,
    Area,
    ChainError,
    ChainResolver,
    ChainSnapshot,
    Nondh,
    NondhDetail,
    RecordStore,
    ValidationError,
    build_passbook,
    ordered_nondhs,
    run_chain_checks,
    summarize_passbook,
)

router = APIRouter()
logger = logging.getLogger(__name__)

_store: Optional[RecordStore] = None


def get_store() -> RecordStore:
    global _store
    if _store is None:
        _store = RecordStore()
    return _store


class RecordIn(BaseModel):
    basic_info: dict = {}
    nondhs: list[dict] = []
    details: list[dict] = []
    year_slabs: list[dict] = []


class StatusUpdate(BaseModel):
    status: str
    reason: Optional[str] = None


class DateUpdate(BaseModel):
    date: Optional[str] = None


class OldOwnerUpdate(BaseModel):
    old_owner: str


class AreaIn(BaseModel):
    # number, or free text such as "2 acres 10 gunthas"
    value: Union[float, str] = 0.0
    unit: str = "sq_m"
    acres: Optional[float] = None
    gunthas: Optional[float] = None

    def to_area(self) -> Area:
        return Area.from_dict(self.model_dump())


class RelationIn(BaseModel):
    owner_name: str
    area: Optional[AreaIn] = None
    relation_id: Optional[str] = None
    tenure: Optional[str] = None


class EqualDistributionUpdate(BaseModel):
    enabled: bool


class AffectedIn(BaseModel):
    affected: list[dict]


class NondhIn(BaseModel):
    nondh: dict
    detail: dict


# ── Helpers ──

def _load(record_id: str) -> ChainSnapshot:
    try:
        return ChainResolver().resolve(get_store().load_snapshot(record_id))
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Record not found")
    except ChainError as e:
        raise_http(e)


def _apply(record_id: str, operation, *args, **kwargs) -> dict:
    """Load, run one resolver operation, save, and return the new state."""
    snapshot = _load(record_id)
    resolver = ChainResolver()
    try:
        updated = getattr(resolver, operation)(snapshot, *args, **kwargs)
    except ChainError as e:
        raise_http(e)
    get_store().save_snapshot(record_id, updated)
    return _state(updated)


def _state(snapshot: ChainSnapshot) -> dict:
    return {
        "snapshot": snapshot.to_dict(),
        "order": [n.id for n in ordered_nondhs(snapshot)],
    }


# ── Records ──

@router.get("/list")
async def list_records():
    """List stored record ids."""
    records = get_store().list_records()
    return {"records": records, "count": len(records)}


@router.get("/{record_id}")
async def get_record(record_id: str):
    """Load a record with validity recomputed."""
    return _state(_load(record_id))


@router.put("/{record_id}")
async def put_record(record_id: str, record: RecordIn):
    """Create or replace a record. The chain must decode and resolve cleanly."""
    try:
        snapshot = ChainSnapshot.from_dict({
            "nondhs": record.nondhs,
            "details": record.details,
            "year_slabs": record.year_slabs,
        })
        resolved = ChainResolver().resolve(snapshot)
        get_store().save_snapshot(record_id, resolved, basic_info=record.basic_info)
    except (KeyError, TypeError) as e:
        raise HTTPException(status_code=422, detail=f"Malformed record: {e}")
    except ChainError as e:
        raise_http(e)
    logger.info(f"Record {record_id} saved: {len(resolved.nondhs)} nondhs")
    return _state(_load(record_id))


@router.delete("/{record_id}")
async def delete_record(record_id: str):
    try:
        get_store().delete_record(record_id)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Record not found")
    except ChainError as e:
        raise_http(e)
    return {"deleted": record_id}


@router.get("/{record_id}/checks")
async def get_record_checks(record_id: str):
    """Rule-coded findings for a stored chain."""
    checks = run_chain_checks(_load(record_id))
    return {"checks": checks, "count": len(checks)}


@router.get("/{record_id}/passbook")
async def get_record_passbook(record_id: str, survey_number: Optional[str] = None):
    rows = build_passbook(_load(record_id), survey_number)
    return {"rows": [r.to_dict() for r in rows], "summary": summarize_passbook(rows)}


# ── Nondhs ──

@router.post("/{record_id}/nondhs")
async def add_nondh(record_id: str, body: NondhIn):
    try:
        nondh = Nondh.from_dict(body.nondh)
        detail = NondhDetail.from_dict(body.detail)
    except (KeyError, TypeError) as e:
        raise HTTPException(status_code=422, detail=f"Malformed nondh: {e}")
    except ChainError as e:
        raise_http(e)
    return _apply(record_id, "add_nondh", nondh, detail)


@router.delete("/{record_id}/nondhs/{nondh_id}")
async def delete_nondh(record_id: str, nondh_id: str):
    return _apply(record_id, "delete_nondh", nondh_id)


# ── Details ──

@router.post("/{record_id}/details/{detail_id}/status")
async def update_status(record_id: str, detail_id: str, body: StatusUpdate):
    return _apply(record_id, "set_status", detail_id, body.status, body.reason)


@router.post("/{record_id}/details/{detail_id}/date")
async def update_date(record_id: str, detail_id: str, body: DateUpdate):
    return _apply(record_id, "set_date", detail_id, body.date)


@router.post("/{record_id}/details/{detail_id}/old-owner")
async def update_old_owner(record_id: str, detail_id: str, body: OldOwnerUpdate):
    return _apply(record_id, "set_old_owner", detail_id, body.old_owner)


@router.post("/{record_id}/details/{detail_id}/equal-distribution")
async def update_equal_distribution(record_id: str, detail_id: str, body: EqualDistributionUpdate):
    return _apply(record_id, "set_equal_distribution", detail_id, body.enabled)


@router.post("/{record_id}/details/{detail_id}/relations")
async def add_relation(record_id: str, detail_id: str, body: RelationIn):
    try:
        area = body.area.to_area() if body.area else None
    except ValidationError as e:
        raise_http(e)
    extra = {"tenure": body.tenure} if body.tenure else {}
    return _apply(
        record_id, "add_relation", detail_id, body.owner_name, area, body.relation_id, **extra
    )


@router.put("/{record_id}/details/{detail_id}/relations/{relation_id}/area")
async def update_relation_area(record_id: str, detail_id: str, relation_id: str, body: AreaIn):
    try:
        area = body.to_area()
    except ValidationError as e:
        raise_http(e)
    return _apply(record_id, "update_relation_area", detail_id, relation_id, area)


@router.delete("/{record_id}/details/{detail_id}/relations/{relation_id}")
async def remove_relation(record_id: str, detail_id: str, relation_id: str):
    return _apply(record_id, "remove_relation", detail_id, relation_id)


@router.put("/{record_id}/details/{detail_id}/affected")
async def update_affected(record_id: str, detail_id: str, body: AffectedIn):
    try:
        affected = [AffectedNondh.from_dict(a) for a in body.affected]
    except KeyError as e:
        raise HTTPException(status_code=422, detail=f"Malformed annotation: {e}")
    except ChainError as e:
        raise_http(e)
    return _apply(record_id, "set_affected", detail_id, affected)


@router.post("/{record_id}/details/{detail_id}/affected/{annotation_id}/toggle")
async def toggle_affected(record_id: str, detail_id: str, annotation_id: str):
    return _apply(record_id, "toggle_affected", detail_id, annotation_id)


@router.post("/{record_id}/details/{detail_id}/validate")
async def validate_detail_fields(record_id: str, detail_id: str):
    """Report missing fields of a detail (422 with the list when incomplete)."""
    snapshot = _load(record_id)
    try:
        ChainResolver().ensure_complete(snapshot, detail_id)
    except ChainError as e:
        raise_http(e)
    return {"detail_id": detail_id, "complete": True}
