"""Shared fixtures for the nondh chain test suite."""

import pytest
from datetime import date

from landrecord.chain.models import (
    Area,
    ChainSnapshot,
    Nondh,
    NondhDetail,
    NondhStatus,
    NondhType,
    OrderDetails,
    OwnerRelation,
    SaleDetails,
    SlabEntry,
    SurveyKind,
    SurveyNumber,
    YearSlab,
)
from landrecord.chain.validity import propagate_validity


class ChainBuilder:
    """Build chain snapshots tersely.

    Nondh ids are ``n<number>``, detail ids ``n<number>-d`` and relation ids
    ``n<number>-r<index>`` unless given explicitly.
    """

    def __init__(self, survey: str = "45", kind: SurveyKind = SurveyKind.PRIMARY):
        self.survey = survey
        self.universe = [SurveyNumber(survey, kind)]
        self.nondhs: list[Nondh] = []
        self.details: list[NondhDetail] = []
        self.year_slabs: list[YearSlab] = []

    def add(
        self,
        number: int,
        type: NondhType = NondhType.POSSESSION,
        *,
        owners=(),
        old_owner: str = "",
        status: NondhStatus = NondhStatus.VALID,
        reason: str = "",
        when=None,
        created_at=None,
        surveys=None,
        ganot=None,
        affected=(),
        equal: bool = False,
        nondh_id: str = None,
    ) -> str:
        """Add a nondh + detail; ``owners`` is a list of (name, m²) pairs."""
        nid = nondh_id or f"n{number}"
        if surveys is None:
            surveys = [SurveyNumber(self.survey, self.universe[0].kind)]
        relations = tuple(
            OwnerRelation(id=f"{nid}-r{i}", owner_name=name, area=Area.sq_m(sqm))
            for i, (name, sqm) in enumerate(owners)
        )
        self.nondhs.append(Nondh(id=nid, number=number, affected_survey_numbers=tuple(surveys)))
        self.details.append(NondhDetail(
            id=f"{nid}-d",
            nondh_id=nid,
            type=type,
            status=status,
            effective_date=when,
            invalid_reason=reason,
            old_owner=old_owner,
            owner_relations=relations,
            order=OrderDetails(ganot=ganot, affected=tuple(affected)) if type == NondhType.ORDER else None,
            sale=SaleDetails() if type == NondhType.SALE else None,
            equal_distribution=equal,
            created_at=created_at,
        ))
        return nid

    def slab(self, start: int, end: int, sqm: float, paiky=(), consolidation=(), slab_id: str = None):
        self.year_slabs.append(YearSlab(
            id=slab_id or f"slab-{start}",
            start_year=start,
            end_year=end,
            area=Area.sq_m(sqm),
            survey_number=SurveyNumber(self.survey),
            paiky_entries=tuple(SlabEntry(area=Area.sq_m(a)) for a in paiky),
            consolidation_entries=tuple(SlabEntry(area=Area.sq_m(a)) for a in consolidation),
        ))
        return self

    def snapshot(self, resolve: bool = True) -> ChainSnapshot:
        snap = ChainSnapshot(
            nondhs=tuple(self.nondhs),
            details=tuple(self.details),
            survey_universe=tuple(self.universe),
            year_slabs=tuple(self.year_slabs),
        )
        return propagate_validity(snap) if resolve else snap


@pytest.fixture
def builder():
    return ChainBuilder()


@pytest.fixture
def make_builder():
    """Factory for extra builders (custom survey number or kind)."""
    return ChainBuilder


@pytest.fixture
def abc_snapshot():
    """A: possession X 1000 m² → B: sale X→Y 400 m² → C: sale Y→Z 400 m² (Radd, "dispute")."""
    b = ChainBuilder()
    b.add(1, NondhType.POSSESSION, owners=[("X", 1000)], when=date(2001, 1, 10))
    b.add(2, NondhType.SALE, old_owner="X", owners=[("Y", 400)], when=date(2005, 6, 1))
    b.add(
        3, NondhType.SALE, old_owner="Y", owners=[("Z", 400)], when=date(2010, 3, 15),
        status=NondhStatus.INVALID, reason="dispute",
    )
    b.add(4, NondhType.SALE, when=date(2015, 1, 1))  # hypothetical D, no owners yet
    return b.snapshot()


@pytest.fixture
def slab_snapshot():
    """Possession X 2000 m², then a sale from X dated inside a 1000 m² slab."""
    b = ChainBuilder()
    b.slab(2000, 2010, 1000)
    b.add(1, NondhType.POSSESSION, owners=[("X", 2000)], when=date(1995, 1, 1))
    b.add(2, NondhType.SALE, old_owner="X", owners=[("Y", 600), ("W", 300)], when=date(2005, 1, 1))
    return b.snapshot()


@pytest.fixture
def record_dict():
    """A stored record as written by the register: survey refs as JSON strings."""
    return {
        "record_id": "village-45",
        "basic_info": {"s_no": "45, 46", "block_no": "12"},
        "nondhs": [
            {"id": "n1", "number": "1", "affected_s_nos": ['{"number": "45", "type": "s_no"}']},
            {"id": "n2", "number": "2", "affected_s_nos": ['{"number": "12", "type": "block_no"}']},
            {"id": "n3", "number": "3", "affected_s_nos": ['{"number": "99", "type": "s_no"}']},
        ],
        "details": [
            {
                "id": "n1-d", "nondh_id": "n1", "type": "Kabjedaar", "status": "valid",
                "effective_date": "2001-01-10",
                "owner_relations": [
                    {"id": "n1-r0", "owner_name": "X", "area": {"value": 1000, "unit": "sq_m"}},
                ],
            },
            {
                "id": "n2-d", "nondh_id": "n2", "type": "Vechand", "status": "valid",
                "effective_date": "2005-06-01", "old_owner": "X",
                "owner_relations": [
                    {"id": "n2-r0", "owner_name": "Y", "area": {"value": 400, "unit": "sq_m"}},
                ],
                "sale": {"sd_date": "2005-05-20", "amount": 250000},
            },
            {
                "id": "n3-d", "nondh_id": "n3", "type": "Varsai", "status": "valid",
                "effective_date": "2012-02-02", "old_owner": "Y",
                "owner_relations": [
                    {"id": "n3-r0", "owner_name": "Q", "area": {"value": 100, "unit": "sq_m"}},
                ],
            },
        ],
        "year_slabs": [
            {"id": "s1", "start_year": 2000, "end_year": 2020, "area": {"value": 1000, "unit": "sq_m"}},
        ],
    }
