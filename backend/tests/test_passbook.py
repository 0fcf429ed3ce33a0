"""Tests for the passbook projection.

Tests cover:
  - Only valid relations appear; rows are ordered by year
  - Year from effective date, falling back to creation date
  - Survey number filter (relation override, detail, affected numbers)
  - Per-year summary
  - Row dicts carry the area in acres + gunthas as well as m²
"""

from dataclasses import replace
from datetime import date

from landrecord.chain.models import NondhType, SurveyNumber
from landrecord.chain.passbook import PassbookRow, build_passbook, summarize_passbook


def _owners(rows) -> list:
    return [(r.year, r.owner_name) for r in rows]


class TestBuildPassbook:

    def test_suppressed_chain_is_empty(self, abc_snapshot):
        assert build_passbook(abc_snapshot) == []

    def test_rows_in_year_order(self, builder):
        builder.add(2, NondhType.SALE, old_owner="X", owners=[("Y", 400)], when=date(2005, 6, 1))
        builder.add(1, NondhType.POSSESSION, owners=[("X", 1000)], when=date(2001, 1, 10))
        rows = build_passbook(builder.snapshot())
        assert _owners(rows) == [(2001, "X"), (2005, "Y")]
        assert rows[0].area == 1000
        assert rows[0].survey_number == "45"
        assert rows[1].nondh_number == 2

    def test_created_at_fallback(self, builder):
        builder.add(1, NondhType.POSSESSION, owners=[("X", 1000)], created_at=date(2019, 4, 2))
        assert _owners(build_passbook(builder.snapshot())) == [(2019, "X")]

    def test_undated_relations_left_out(self, builder):
        builder.add(1, NondhType.POSSESSION, owners=[("X", 1000)])
        builder.add(2, NondhType.POSSESSION, owners=[("Y", 50)], when=date(2003, 1, 1))
        assert _owners(build_passbook(builder.snapshot())) == [(2003, "Y")]

    def test_survey_filter_on_affected_numbers(self, builder):
        builder.add(1, NondhType.POSSESSION, owners=[("X", 1000)], when=date(2001, 1, 1))
        builder.add(
            2, NondhType.POSSESSION, owners=[("W", 500)], when=date(2002, 1, 1),
            surveys=[SurveyNumber("46")],
        )
        rows = build_passbook(builder.snapshot(), "46")
        assert _owners(rows) == [(2002, "W")]
        assert rows[0].survey_number == "46"

    def test_relation_override_wins(self, builder):
        builder.add(1, NondhType.CORRECTION, owners=[("X", 1000)], when=date(2001, 1, 1))
        detail = builder.details[0]
        relation = replace(detail.owner_relations[0], survey_number_override=SurveyNumber("45/2"))
        builder.details[0] = replace(detail, owner_relations=(relation,))
        rows = build_passbook(builder.snapshot(), "S.No. 45/2")
        assert [r.survey_number for r in rows] == ["45/2"]


class TestSummarizePassbook:

    def test_groups_by_year(self):
        rows = [
            PassbookRow(2001, "X", 1000, "45", 1, "n1"),
            PassbookRow(2005, "Y", 400, "45", 2, "n2"),
            PassbookRow(2005, "Y", 100, "45", 3, "n3"),
            PassbookRow(2005, "Z", 50, "45", 3, "n3"),
        ]
        summary = summarize_passbook(rows)
        assert [s["year"] for s in summary] == [2001, 2005]
        assert summary[1]["rows"] == 3
        assert summary[1]["unique_owners"] == 2
        assert summary[1]["total_area"] == 550

    def test_empty(self):
        assert summarize_passbook([]) == []


class TestPassbookRow:

    def test_dict_has_acre_guntha_split(self):
        row = PassbookRow(2005, "Y", 4046.86 * 2.5, "45", 2, "n2")
        d = row.to_dict()
        assert (d["acres"], d["gunthas"]) == (2, 20)
        assert d["area"] == round(4046.86 * 2.5, 4)

    def test_small_holding_is_all_gunthas(self):
        assert PassbookRow(2005, "Y", 202.34, "45", 2, "n2").acre_guntha == (0, 2)
