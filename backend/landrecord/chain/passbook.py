"""Passbook projection: a year-by-year ledger of valid holdings."""

import logging
from dataclasses import dataclass
from typing import Optional

from landrecord.chain.areas import square_meters_to_acre_guntha
from landrecord.chain.models import ChainSnapshot, Nondh, NondhDetail
from landrecord.chain.utils import normalize_survey_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PassbookRow:
    year: int
    owner_name: str
    area: float  # m²
    survey_number: Optional[str]
    nondh_number: int
    nondh_id: str

    @property
    def acre_guntha(self) -> tuple[int, int]:
        return square_meters_to_acre_guntha(self.area)

    def to_dict(self) -> dict:
        acres, gunthas = self.acre_guntha
        return {
            "year": self.year,
            "owner_name": self.owner_name,
            "area": round(self.area, 4),
            "acres": acres,
            "gunthas": gunthas,
            "survey_number": self.survey_number,
            "nondh_number": self.nondh_number,
            "nondh_id": self.nondh_id,
        }


def _row_year(detail: NondhDetail) -> Optional[int]:
    when = detail.effective_date or detail.created_at
    return when.year if when else None


def _matches_survey(nondh: Nondh, detail: NondhDetail, relation, survey_key: str) -> bool:
    if relation.survey_number_override and relation.survey_number_override.key == survey_key:
        return True
    if detail.survey_number and normalize_survey_number(detail.survey_number) == survey_key:
        return True
    return any(sn.key == survey_key for sn in nondh.affected_survey_numbers)


def build_passbook(snapshot: ChainSnapshot, survey_number: Optional[str] = None) -> list[PassbookRow]:
    """One row per valid owner relation, ordered by year.

    The year comes from the detail's effective date, or its creation date
    when no effective date is set; relations with neither are left out.
    Rows are not deduplicated across years.
    """
    survey_key = normalize_survey_number(survey_number) if survey_number else ""
    rows: list[PassbookRow] = []
    skipped = 0

    for detail in snapshot.details:
        nondh = snapshot.get_nondh(detail.nondh_id)
        if nondh is None:
            continue
        year = _row_year(detail)
        for rel in detail.owner_relations:
            if not rel.is_valid:
                continue
            if year is None:
                skipped += 1
                continue
            if survey_key and not _matches_survey(nondh, detail, rel, survey_key):
                continue
            if rel.survey_number_override:
                sn = rel.survey_number_override.number
            elif detail.survey_number:
                sn = detail.survey_number
            elif nondh.affected_survey_numbers:
                sn = nondh.affected_survey_numbers[0].number
            else:
                sn = None
            rows.append(PassbookRow(
                year=year,
                owner_name=rel.owner_name,
                area=rel.area.square_meters,
                survey_number=sn,
                nondh_number=nondh.number,
                nondh_id=nondh.id,
            ))

    if skipped:
        logger.warning(f"Passbook: {skipped} valid relation(s) without any date left out")
    rows.sort(key=lambda r: r.year)
    return rows


def summarize_passbook(rows: list[PassbookRow]) -> list[dict]:
    """Per-year roll-up: row count, unique owners and total area."""
    by_year: dict[int, dict] = {}
    for row in rows:
        entry = by_year.setdefault(row.year, {"year": row.year, "rows": 0, "owners": [], "total_area": 0.0})
        entry["rows"] += 1
        entry["total_area"] += row.area
        if row.owner_name not in entry["owners"]:
            entry["owners"].append(row.owner_name)

    summary = []
    for year in sorted(by_year):
        entry = by_year[year]
        entry["unique_owners"] = len(entry["owners"])
        entry["total_area"] = round(entry["total_area"], 4)
        summary.append(entry)
    return summary
