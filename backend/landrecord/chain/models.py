"""Data model for the nondh chain.

A land record's mutation register is a chain of *nondhs* (entries). Each
nondh carries exactly one :class:`NondhDetail` holding its type, date,
status and the owner relations it records. Year slabs supply the area
capacity for a date range.

All classes are frozen dataclasses: resolver operations never mutate a
snapshot, they return a new one (``dataclasses.replace``). ``to_dict`` /
``from_dict`` are the only places where wire shapes are handled; survey
numbers persisted as JSON-encoded strings are decoded once, in
:meth:`SurveyNumber.from_value`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from functools import cached_property
from typing import Any, Iterable, Optional

from landrecord.chain.areas import (
    acre_guntha_to_square_meters,
    canonical_unit,
    parse_area_to_sqm,
    to_square_meters,
)
from landrecord.chain.errors import ChainIntegrityError, ValidationError
from landrecord.chain.utils import normalize_owner_name, normalize_survey_number, parse_date

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════

class SurveyKind(str, Enum):
    """Kind of survey number, in priority order."""
    PRIMARY = "s_no"
    BLOCK = "block_no"
    RESURVEY = "re_survey_no"

    @property
    def priority(self) -> int:
        return _KIND_PRIORITY.index(self)


_KIND_PRIORITY = [SurveyKind.PRIMARY, SurveyKind.BLOCK, SurveyKind.RESURVEY]


class NondhType(str, Enum):
    POSSESSION = "Kabjedaar"
    CONSOLIDATION = "Ekatrikaran"
    INHERITANCE = "Varsai"
    LIFETIME_RIGHT = "Hayati_ma_hakh_dakhal"
    RIGHTS_REDUCTION = "Hakkami"
    SALE = "Vechand"
    CORRECTION = "Durasti"
    PROMULGATION = "Promulgation"
    ORDER = "Hukam"
    PARTITION = "Vehchani"
    ENCUMBRANCE = "Bojo"
    OTHER = "Other"


class NondhStatus(str, Enum):
    VALID = "valid"          # Pramanik
    INVALID = "invalid"      # Radd
    NULLIFIED = "nullified"  # Na manjoor


class AreaUnit(str, Enum):
    SQ_M = "sq_m"
    ACRE_GUNTHA = "acre_guntha"


class Ganot(str, Enum):
    FIRST_RIGHT = "1st Right"
    SECOND_RIGHT = "2nd Right"


class OrderAuthority(str, Enum):
    SSRD = "SSRD"
    COLLECTOR = "Collector"
    COLLECTOR_GANOT = "Collector_ganot"
    PRANT = "Prant"
    MAMLATDAR = "Mamlajdaar"
    GRT = "GRT"
    JASU = "Jasu"
    ALT_KRUSHIPANCH = "ALT Krushipanch"
    DILR = "DILR"


# Types whose detail names an old owner whose holding is split among new owners
TRANSFER_TYPES = frozenset({
    NondhType.INHERITANCE,
    NondhType.RIGHTS_REDUCTION,
    NondhType.SALE,
    NondhType.LIFETIME_RIGHT,
    NondhType.PARTITION,
})

# Types that feed the previous-owner pool
OWNER_POOL_TYPES = TRANSFER_TYPES | {NondhType.POSSESSION, NondhType.CONSOLIDATION}

# Types whose relations may carry their own survey number
SURVEY_OVERRIDE_TYPES = frozenset({NondhType.CORRECTION, NondhType.PROMULGATION})


def _enum(enum_cls, value, default=None):
    if value is None or value == "":
        return default
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(
            f"Invalid {enum_cls.__name__} '{value}'. "
            f"Must be one of: {', '.join(m.value for m in enum_cls)}",
            details={"field": enum_cls.__name__, "value": value},
        )


def _iso(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d else None


# ═══════════════════════════════════════════════════
# SURVEY NUMBERS & AREAS
# ═══════════════════════════════════════════════════

@dataclass(frozen=True)
class SurveyNumber:
    """A survey / block / re-survey number."""
    number: str
    kind: SurveyKind = SurveyKind.PRIMARY

    @property
    def key(self) -> str:
        """Normalized number used for universe membership and matching."""
        return normalize_survey_number(self.number)

    def to_dict(self) -> dict:
        return {"number": self.number, "type": self.kind.value}

    @classmethod
    def from_value(cls, value: Any, default_kind: SurveyKind = SurveyKind.PRIMARY) -> "SurveyNumber":
        """Decode a survey number from a dict, a JSON-encoded string or a plain string.

        The register stores affected survey numbers as JSON strings inside an
        array column (``'{"number": "45/1", "type": "block_no"}'``); a string
        that does not parse as JSON is the bare number.
        """
        if isinstance(value, SurveyNumber):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.startswith("{"):
                try:
                    value = json.loads(stripped)
                except json.JSONDecodeError:
                    raise ValidationError(
                        f"Malformed survey number reference: {value!r}",
                        details={"value": value},
                    )
            else:
                if not stripped:
                    raise ValidationError("Empty survey number reference")
                return cls(number=stripped, kind=default_kind)
        if isinstance(value, dict):
            number = str(value.get("number") or value.get("s_no") or "").strip()
            if not number:
                raise ValidationError(
                    "Survey number reference has no number",
                    details={"value": value},
                )
            kind = _enum(SurveyKind, value.get("type") or value.get("kind"), default_kind)
            return cls(number=number, kind=kind)
        raise ValidationError(
            f"Malformed survey number reference: {value!r}",
            details={"value": repr(value)},
        )


@dataclass(frozen=True)
class Area:
    """An area as entered: square meters, or an acre + guntha pair."""
    value: float = 0.0
    unit: AreaUnit = AreaUnit.SQ_M
    acres: Optional[float] = None
    gunthas: Optional[float] = None

    @property
    def square_meters(self) -> float:
        if self.unit == AreaUnit.ACRE_GUNTHA:
            return acre_guntha_to_square_meters(self.acres or 0, self.gunthas or 0)
        return float(self.value or 0)

    @classmethod
    def sq_m(cls, value: float) -> "Area":
        return cls(value=float(value), unit=AreaUnit.SQ_M)

    @classmethod
    def acre_guntha(cls, acres: float, gunthas: float = 0) -> "Area":
        return cls(
            value=acre_guntha_to_square_meters(acres, gunthas),
            unit=AreaUnit.ACRE_GUNTHA,
            acres=acres,
            gunthas=gunthas,
        )

    def to_dict(self) -> dict:
        d = {"value": self.value, "unit": self.unit.value}
        if self.unit == AreaUnit.ACRE_GUNTHA:
            d["acres"] = self.acres
            d["gunthas"] = self.gunthas
        return d

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Area":
        """Build an Area; single-unit ``acre`` / ``guntha`` values are converted to m².

        A ``value`` written as text ("2 acres 10 gunthas", "1,250") is parsed
        as an extent; a bare number in text is square meters.
        """
        if not data:
            return cls()
        unit = data.get("unit") or "sq_m"
        if unit == AreaUnit.ACRE_GUNTHA.value:
            return cls.acre_guntha(data.get("acres") or 0, data.get("gunthas") or 0)
        value = data.get("value")
        if value is None:
            value = data.get("square_meters") or 0
        try:
            value = float(value)
        except (TypeError, ValueError):
            parsed = parse_area_to_sqm(value) if isinstance(value, str) else None
            if parsed is None:
                raise ValidationError(f"Invalid area value: {value!r}", details={"area": data})
            value, unit = parsed, "sq_m"
        if value < 0:
            raise ValidationError(f"Area cannot be negative: {value}", details={"area": data})
        if canonical_unit(unit) != "sq_m":
            return cls.sq_m(to_square_meters(value, unit))
        return cls.sq_m(value)


# ═══════════════════════════════════════════════════
# OWNER RELATIONS & DETAIL VARIANTS
# ═══════════════════════════════════════════════════

@dataclass(frozen=True)
class OwnerRelation:
    """One owner's share within a nondh detail."""
    id: str
    owner_name: str
    area: Area = field(default_factory=Area)
    is_valid: bool = True
    survey_number_override: Optional[SurveyNumber] = None
    tenure: Optional[str] = None

    @property
    def name(self) -> str:
        return normalize_owner_name(self.owner_name)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_name": self.owner_name,
            "area": self.area.to_dict(),
            "is_valid": self.is_valid,
            "survey_number_override": (
                self.survey_number_override.to_dict() if self.survey_number_override else None
            ),
            "tenure": self.tenure,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OwnerRelation":
        override = data.get("survey_number_override")
        return cls(
            id=str(data["id"]),
            owner_name=data.get("owner_name") or "",
            area=Area.from_dict(data.get("area")),
            is_valid=bool(data.get("is_valid", True)),
            survey_number_override=SurveyNumber.from_value(override) if override else None,
            tenure=data.get("tenure"),
        )


@dataclass(frozen=True)
class AffectedNondh:
    """An order's annotation on another nondh it affects, by stable nondh id."""
    id: str
    target_nondh_id: str
    status: NondhStatus = NondhStatus.VALID
    invalid_reason: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "target_nondh_id": self.target_nondh_id,
            "status": self.status.value,
            "invalid_reason": self.invalid_reason,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AffectedNondh":
        return cls(
            id=str(data["id"]),
            target_nondh_id=str(data.get("target_nondh_id") or ""),
            status=_enum(NondhStatus, data.get("status"), NondhStatus.VALID),
            invalid_reason=data.get("invalid_reason") or "",
        )


@dataclass(frozen=True)
class OrderDetails:
    """Sub-record present only on ORDER (Hukam) details."""
    authority: Optional[OrderAuthority] = None
    ganot: Optional[Ganot] = None
    affected: tuple[AffectedNondh, ...] = ()

    def to_dict(self) -> dict:
        return {
            "authority": self.authority.value if self.authority else None,
            "ganot": self.ganot.value if self.ganot else None,
            "affected": [a.to_dict() for a in self.affected],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OrderDetails":
        return cls(
            authority=_enum(OrderAuthority, data.get("authority")),
            ganot=_enum(Ganot, data.get("ganot")),
            affected=tuple(AffectedNondh.from_dict(a) for a in data.get("affected") or []),
        )


@dataclass(frozen=True)
class SaleDetails:
    """Sub-record present only on SALE (Vechand) details."""
    sd_date: Optional[date] = None
    amount: Optional[float] = None

    def to_dict(self) -> dict:
        return {"sd_date": _iso(self.sd_date), "amount": self.amount}

    @classmethod
    def from_dict(cls, data: dict) -> "SaleDetails":
        amount = data.get("amount")
        return cls(
            sd_date=parse_date(data.get("sd_date")),
            amount=float(amount) if amount not in (None, "") else None,
        )


# ═══════════════════════════════════════════════════
# NONDH & DETAIL
# ═══════════════════════════════════════════════════

@dataclass(frozen=True)
class Nondh:
    """One entry of the mutation register."""
    id: str
    number: int
    affected_survey_numbers: tuple[SurveyNumber, ...] = ()
    document_ref: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "affected_survey_numbers": [s.to_dict() for s in self.affected_survey_numbers],
            "document_ref": self.document_ref,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Nondh":
        raw_sns = data.get("affected_survey_numbers")
        if raw_sns is None:
            raw_sns = data.get("affected_s_nos") or []
        return cls(
            id=str(data["id"]),
            number=_safe_number(data.get("number")),
            affected_survey_numbers=tuple(SurveyNumber.from_value(s) for s in raw_sns),
            document_ref=data.get("document_ref"),
        )


def _safe_number(value: Any) -> int:
    """Parse a nondh number; anything non-numeric sorts as 0."""
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class NondhDetail:
    """The substantive content of one nondh.

    ``order`` is present only for ORDER details and ``sale`` only for SALE
    details; constructing any other combination raises ValidationError.
    """
    id: str
    nondh_id: str
    type: NondhType
    status: NondhStatus = NondhStatus.VALID
    effective_date: Optional[date] = None
    invalid_reason: str = ""
    old_owner: str = ""
    owner_relations: tuple[OwnerRelation, ...] = ()
    order: Optional[OrderDetails] = None
    sale: Optional[SaleDetails] = None
    equal_distribution: bool = False
    survey_number: str = ""
    created_at: Optional[date] = None

    def __post_init__(self):
        if self.order is not None and self.type != NondhType.ORDER:
            raise ValidationError(
                f"Detail {self.id}: order details are only allowed on {NondhType.ORDER.value} entries",
                details={"detail_id": self.id, "type": self.type.value},
            )
        if self.sale is not None and self.type != NondhType.SALE:
            raise ValidationError(
                f"Detail {self.id}: sale details are only allowed on {NondhType.SALE.value} entries",
                details={"detail_id": self.id, "type": self.type.value},
            )

    @property
    def is_transfer(self) -> bool:
        return self.type in TRANSFER_TYPES

    @property
    def old_owner_name(self) -> str:
        return normalize_owner_name(self.old_owner)

    @property
    def relations_valid(self) -> bool:
        return all(r.is_valid for r in self.owner_relations)

    @property
    def ganot(self) -> Optional[Ganot]:
        return self.order.ganot if self.order else None

    def named_relations(self) -> list[OwnerRelation]:
        """Relations with a non-empty owner name."""
        return [r for r in self.owner_relations if r.name]

    def new_owner_relations(self) -> list[OwnerRelation]:
        """Named relations other than the old owner (all named relations for non-transfer types)."""
        if not self.is_transfer:
            return self.named_relations()
        old = self.old_owner_name
        return [r for r in self.owner_relations if r.name and r.name != old]

    def new_owner_total_sqm(self) -> float:
        return sum(r.area.square_meters for r in self.new_owner_relations())

    def get_relation(self, relation_id: str) -> Optional[OwnerRelation]:
        for r in self.owner_relations:
            if r.id == relation_id:
                return r
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "nondh_id": self.nondh_id,
            "type": self.type.value,
            "status": self.status.value,
            "effective_date": _iso(self.effective_date),
            "invalid_reason": self.invalid_reason,
            "old_owner": self.old_owner,
            "owner_relations": [r.to_dict() for r in self.owner_relations],
            "order": self.order.to_dict() if self.order else None,
            "sale": self.sale.to_dict() if self.sale else None,
            "equal_distribution": self.equal_distribution,
            "survey_number": self.survey_number,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NondhDetail":
        detail_type = _enum(NondhType, data.get("type"))
        if detail_type is None:
            raise ValidationError(
                f"Detail {data.get('id')}: type is required",
                details={"detail_id": data.get("id")},
            )
        order = data.get("order")
        sale = data.get("sale")
        return cls(
            id=str(data["id"]),
            nondh_id=str(data["nondh_id"]),
            type=detail_type,
            status=_enum(NondhStatus, data.get("status"), NondhStatus.VALID),
            effective_date=parse_date(data.get("effective_date")),
            invalid_reason=data.get("invalid_reason") or "",
            old_owner=data.get("old_owner") or "",
            owner_relations=tuple(OwnerRelation.from_dict(r) for r in data.get("owner_relations") or []),
            order=OrderDetails.from_dict(order) if order is not None and detail_type == NondhType.ORDER else None,
            sale=SaleDetails.from_dict(sale) if sale is not None and detail_type == NondhType.SALE else None,
            equal_distribution=bool(data.get("equal_distribution", False)),
            survey_number=data.get("survey_number") or "",
            created_at=parse_date(data.get("created_at")),
        )


# ═══════════════════════════════════════════════════
# YEAR SLABS
# ═══════════════════════════════════════════════════

@dataclass(frozen=True)
class SlabEntry:
    """A paiky (part) or consolidation sub-entry of a year slab."""
    survey_number: Optional[SurveyNumber] = None
    area: Area = field(default_factory=Area)

    def to_dict(self) -> dict:
        return {
            "survey_number": self.survey_number.to_dict() if self.survey_number else None,
            "area": self.area.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SlabEntry":
        sn = data.get("survey_number")
        return cls(
            survey_number=SurveyNumber.from_value(sn) if sn else None,
            area=Area.from_dict(data.get("area")),
        )


@dataclass(frozen=True)
class YearSlab:
    """A year range with the maximum area distributable for it."""
    id: str
    start_year: int
    end_year: int
    area: Area = field(default_factory=Area)
    survey_number: Optional[SurveyNumber] = None
    paiky_entries: tuple[SlabEntry, ...] = ()
    consolidation_entries: tuple[SlabEntry, ...] = ()

    def covers(self, year: int) -> bool:
        return self.start_year <= year <= self.end_year

    @property
    def capacity_sqm(self) -> float:
        """Paiky + consolidation entries replace the base area when any exist."""
        sub_entries = self.paiky_entries + self.consolidation_entries
        if sub_entries:
            return sum(e.area.square_meters for e in sub_entries)
        return self.area.square_meters

    def survey_numbers(self) -> list[SurveyNumber]:
        out = [self.survey_number] if self.survey_number else []
        out.extend(e.survey_number for e in self.paiky_entries + self.consolidation_entries if e.survey_number)
        return out

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "start_year": self.start_year,
            "end_year": self.end_year,
            "area": self.area.to_dict(),
            "survey_number": self.survey_number.to_dict() if self.survey_number else None,
            "paiky_entries": [e.to_dict() for e in self.paiky_entries],
            "consolidation_entries": [e.to_dict() for e in self.consolidation_entries],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "YearSlab":
        sn = data.get("survey_number")
        return cls(
            id=str(data["id"]),
            start_year=int(data["start_year"]),
            end_year=int(data["end_year"]),
            area=Area.from_dict(data.get("area")),
            survey_number=SurveyNumber.from_value(sn) if sn else None,
            paiky_entries=tuple(SlabEntry.from_dict(e) for e in data.get("paiky_entries") or []),
            consolidation_entries=tuple(
                SlabEntry.from_dict(e) for e in data.get("consolidation_entries") or []
            ),
        )


# ═══════════════════════════════════════════════════
# SNAPSHOT
# ═══════════════════════════════════════════════════

@dataclass(frozen=True)
class ChainSnapshot:
    """Immutable in-memory view of one land record's nondh chain."""
    nondhs: tuple[Nondh, ...] = ()
    details: tuple[NondhDetail, ...] = ()
    survey_universe: tuple[SurveyNumber, ...] = ()
    year_slabs: tuple[YearSlab, ...] = ()

    @cached_property
    def universe_keys(self) -> frozenset[str]:
        return frozenset(s.key for s in self.survey_universe)

    @cached_property
    def _nondh_index(self) -> dict[str, Nondh]:
        return {n.id: n for n in self.nondhs}

    @cached_property
    def _detail_index(self) -> dict[str, NondhDetail]:
        return {d.id: d for d in self.details}

    @cached_property
    def _detail_by_nondh(self) -> dict[str, NondhDetail]:
        return {d.nondh_id: d for d in self.details}

    def get_nondh(self, nondh_id: str) -> Optional[Nondh]:
        return self._nondh_index.get(nondh_id)

    def get_detail(self, detail_id: str) -> Optional[NondhDetail]:
        return self._detail_index.get(detail_id)

    def detail_for(self, nondh_id: str) -> Optional[NondhDetail]:
        return self._detail_by_nondh.get(nondh_id)

    def with_details(self, details: Iterable[NondhDetail]) -> "ChainSnapshot":
        return replace(self, details=tuple(details))

    def replace_detail(self, detail: NondhDetail) -> "ChainSnapshot":
        return self.with_details(detail if d.id == detail.id else d for d in self.details)

    def check_integrity(self) -> None:
        """Raise ChainIntegrityError for duplicate ids or details without a nondh."""
        if len(self._nondh_index) != len(self.nondhs):
            raise ChainIntegrityError("Duplicate nondh ids in snapshot")
        if len(self._detail_index) != len(self.details):
            raise ChainIntegrityError("Duplicate detail ids in snapshot")
        if len(self._detail_by_nondh) != len(self.details):
            raise ChainIntegrityError("More than one detail recorded for the same nondh")
        orphans = [d.id for d in self.details if d.nondh_id not in self._nondh_index]
        if orphans:
            raise ChainIntegrityError(
                f"{len(orphans)} detail(s) reference a missing nondh",
                details={"detail_ids": orphans},
            )

    def to_dict(self) -> dict:
        return {
            "nondhs": [n.to_dict() for n in self.nondhs],
            "details": [d.to_dict() for d in self.details],
            "survey_universe": [s.to_dict() for s in self.survey_universe],
            "year_slabs": [s.to_dict() for s in self.year_slabs],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChainSnapshot":
        return cls(
            nondhs=tuple(Nondh.from_dict(n) for n in data.get("nondhs") or []),
            details=tuple(NondhDetail.from_dict(d) for d in data.get("details") or []),
            survey_universe=tuple(SurveyNumber.from_value(s) for s in data.get("survey_universe") or []),
            year_slabs=tuple(YearSlab.from_dict(s) for s in data.get("year_slabs") or []),
        )
