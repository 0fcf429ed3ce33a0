"""Tests for previous-owner pools, ganot pools and date bounds.

Tests cover:
  - get_previous_owners: remaining holdings, status-based skipping,
    running pool across successive transfers, survey number filter
  - get_ganot_owners: second-right list, first-right old/new pools
  - get_min_date / get_max_date / is_valid_date_order
"""

import pytest
from datetime import date

from landrecord.chain.errors import ReferentialError
from landrecord.chain.models import Ganot, NondhStatus, NondhType, SurveyNumber
from landrecord.chain.owners import (
    GanotPool,
    get_ganot_owners,
    get_max_date,
    get_min_date,
    get_previous_owner,
    get_previous_owners,
    is_valid_date_order,
    prior_nondhs,
)


def _holdings(owners) -> dict:
    return {o.name: round(o.remaining_area, 2) for o in owners}


# ═══════════════════════════════════════════════════
# 1. Previous owners
# ═══════════════════════════════════════════════════

class TestPreviousOwners:
    """Owner pool before a nondh, holdings in m²."""

    def test_abc_pool_before_d(self, abc_snapshot):
        owners = get_previous_owners(abc_snapshot, None, "n4")
        assert _holdings(owners) == {"X": 600, "Y": 400}

    def test_old_owner_flagged(self, abc_snapshot):
        x = get_previous_owner(abc_snapshot, "n4", "X")
        assert x.is_old_owner
        assert x.nondh_id == "n2"
        assert x.nondh_type == NondhType.SALE

    def test_suppressed_relations_still_feed_pool(self, abc_snapshot):
        """B's relations are invalid (C was invalidated) but B's own status is valid."""
        assert not abc_snapshot.get_detail("n2-d").relations_valid
        assert get_previous_owner(abc_snapshot, "n4", "Y") is not None

    def test_invalid_status_skipped(self, abc_snapshot):
        assert get_previous_owner(abc_snapshot, "n4", "Z") is None

    def test_nullified_status_skipped(self, builder):
        builder.add(1, NondhType.POSSESSION, owners=[("X", 1000)])
        builder.add(2, NondhType.SALE, old_owner="X", owners=[("Y", 400)], status=NondhStatus.NULLIFIED)
        builder.add(3, NondhType.SALE)
        assert _holdings(get_previous_owners(builder.snapshot(), None, "n3")) == {"X": 1000}

    def test_successive_transfers_draw_down_holding(self, builder):
        builder.add(1, NondhType.POSSESSION, owners=[("X", 1000)])
        builder.add(2, NondhType.SALE, old_owner="X", owners=[("Y", 300)])
        builder.add(3, NondhType.SALE, old_owner="X", owners=[("Z", 200)])
        builder.add(4, NondhType.SALE)
        assert _holdings(get_previous_owners(builder.snapshot(), None, "n4")) == {
            "X": 500, "Y": 300, "Z": 200,
        }

    def test_remaining_floored_at_zero(self, builder):
        builder.add(1, NondhType.POSSESSION, owners=[("X", 100)])
        builder.add(2, NondhType.SALE, old_owner="X", owners=[("Y", 300)])
        builder.add(3, NondhType.SALE)
        assert get_previous_owner(builder.snapshot(), "n3", "X").remaining_area == 0

    def test_unknown_old_owner_starts_at_zero(self, builder):
        builder.add(1, NondhType.SALE, old_owner="Ghost", owners=[("Y", 300)])
        builder.add(2, NondhType.SALE)
        assert get_previous_owner(builder.snapshot(), "n2", "Ghost").remaining_area == 0

    def test_non_pool_types_ignored(self, builder):
        builder.add(1, NondhType.ENCUMBRANCE, owners=[("Bank", 1000)])
        builder.add(2, NondhType.SALE)
        assert get_previous_owners(builder.snapshot(), None, "n2") == []

    def test_later_nondhs_ignored(self, abc_snapshot):
        assert _holdings(get_previous_owners(abc_snapshot, None, "n2")) == {"X": 1000}

    def test_survey_filter(self, builder):
        builder.add(1, NondhType.POSSESSION, owners=[("X", 1000)])
        builder.add(2, NondhType.POSSESSION, owners=[("W", 500)], surveys=[SurveyNumber("46")])
        builder.add(3, NondhType.SALE)
        snapshot = builder.snapshot()
        assert set(_holdings(get_previous_owners(snapshot, "45", "n3"))) == {"X"}
        assert set(_holdings(get_previous_owners(snapshot, None, "n3"))) == {"X", "W"}

    def test_name_lookup_normalizes_whitespace(self, abc_snapshot):
        assert get_previous_owner(abc_snapshot, "n4", "  Y ").name == "Y"

    def test_unknown_nondh(self, abc_snapshot):
        with pytest.raises(ReferentialError):
            prior_nondhs(abc_snapshot, "missing")


# ═══════════════════════════════════════════════════
# 2. Ganot pools
# ═══════════════════════════════════════════════════

@pytest.fixture
def ganot_snapshot(builder):
    """X holds 1000; a second-right order names S; X then sells everything to Y."""
    builder.add(1, NondhType.POSSESSION, owners=[("X", 1000)])
    builder.add(2, NondhType.ORDER, owners=[("S", 200)], ganot=Ganot.SECOND_RIGHT)
    builder.add(3, NondhType.SALE, old_owner="X", owners=[("Y", 1000)])
    builder.add(4, NondhType.ORDER, ganot=Ganot.FIRST_RIGHT)
    return builder


class TestGanotOwners:

    def test_second_right_lists_all_holders(self, ganot_snapshot):
        owners = get_ganot_owners(ganot_snapshot.snapshot(), "n4", Ganot.SECOND_RIGHT)
        assert isinstance(owners, list)
        assert set(_holdings(owners)) == {"S", "Y"}

    def test_first_right_splits_pools(self, ganot_snapshot):
        pool = get_ganot_owners(ganot_snapshot.snapshot(), "n4", "1st Right")
        assert isinstance(pool, GanotPool)
        assert set(_holdings(pool.old_owners)) == {"Y"}
        assert set(_holdings(pool.new_owners)) == {"S"}

    def test_first_right_ignores_invalid_second_right_orders(self, builder):
        builder.add(1, NondhType.POSSESSION, owners=[("X", 1000)])
        builder.add(
            2, NondhType.ORDER, owners=[("S", 200)], ganot=Ganot.SECOND_RIGHT,
            status=NondhStatus.INVALID, reason="set aside",
        )
        builder.add(3, NondhType.ORDER, ganot=Ganot.FIRST_RIGHT)
        pool = get_ganot_owners(builder.snapshot(), "n3", Ganot.FIRST_RIGHT)
        assert pool.new_owners == []
        assert set(_holdings(pool.old_owners)) == {"X"}

    def test_unknown_ganot(self, ganot_snapshot):
        with pytest.raises(ValueError):
            get_ganot_owners(ganot_snapshot.snapshot(), "n4", "3rd Right")


# ═══════════════════════════════════════════════════
# 3. Date bounds
# ═══════════════════════════════════════════════════

class TestDateBounds:
    """Bounds come from the neighbours in chain order, one day inside them."""

    def test_min_date(self, abc_snapshot):
        assert get_min_date(abc_snapshot, "n2") == date(2001, 1, 11)

    def test_max_date(self, abc_snapshot):
        assert get_max_date(abc_snapshot, "n2") == date(2010, 3, 14)

    def test_open_ends(self, abc_snapshot):
        assert get_min_date(abc_snapshot, "n1") is None
        assert get_max_date(abc_snapshot, "n4") is None

    def test_undated_neighbour_gives_no_bound(self, builder):
        builder.add(1, NondhType.POSSESSION, owners=[("X", 1000)])
        builder.add(2, NondhType.SALE, when=date(2005, 1, 1))
        assert get_min_date(builder.snapshot(), "n2") is None

    def test_bounds_are_inclusive(self, abc_snapshot):
        assert is_valid_date_order(abc_snapshot, "n2", date(2001, 1, 11))
        assert is_valid_date_order(abc_snapshot, "n2", date(2010, 3, 14))
        assert not is_valid_date_order(abc_snapshot, "n2", date(2001, 1, 10))
        assert not is_valid_date_order(abc_snapshot, "n2", date(2010, 3, 15))

    def test_no_date_is_valid(self, abc_snapshot):
        assert is_valid_date_order(abc_snapshot, "n2", None)

    def test_unknown_nondh(self, abc_snapshot):
        with pytest.raises(ReferentialError):
            get_min_date(abc_snapshot, "missing")
