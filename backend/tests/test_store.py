"""Tests for the file-backed record store.

Tests cover:
  - Atomic save / load, listing, deletion, record id validation
  - Decoding of survey numbers stored as JSON strings
  - load_snapshot: survey universe from basic info + slabs, chain order
  - RecordRepository operations on details and relations
"""

import json
import pytest
from dataclasses import replace
from unittest.mock import patch

from landrecord.chain.errors import ReferentialError, ValidationError
from landrecord.chain.models import Area, OwnerRelation, SurveyKind, SurveyNumber
from landrecord.chain.ordering import ordered_nondhs
from landrecord.chain.store import RecordRepository, RecordStore, decode_survey_numbers


@pytest.fixture
def store(tmp_path):
    return RecordStore(records_dir=tmp_path)


@pytest.fixture
def saved(store, record_dict):
    store.save_record("village-45", record_dict)
    return store


# ═══════════════════════════════════════════════════
# 1. Files
# ═══════════════════════════════════════════════════

class TestRecordFiles:

    def test_save_and_load(self, saved, tmp_path):
        assert (tmp_path / "village-45.json").exists()
        assert saved.exists("village-45")
        assert saved.list_records() == ["village-45"]

    def test_no_temp_leftover(self, saved, tmp_path):
        assert list(tmp_path.glob("*.tmp")) == []

    def test_failed_write_keeps_previous_file(self, saved, tmp_path, record_dict):
        before = (tmp_path / "village-45.json").read_text(encoding="utf-8")
        with patch("landrecord.chain.store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                saved.save_record("village-45", {**record_dict, "basic_info": {}})
        assert (tmp_path / "village-45.json").read_text(encoding="utf-8") == before
        assert list(tmp_path.glob("*.tmp")) == []

    def test_missing_record(self, store):
        with pytest.raises(FileNotFoundError):
            store.load_record("nope")
        with pytest.raises(FileNotFoundError):
            store.delete_record("nope")

    def test_delete(self, saved):
        saved.delete_record("village-45")
        assert not saved.exists("village-45")

    @pytest.mark.parametrize("bad_id", ["../etc/passwd", "", "a b", "x" * 65])
    def test_invalid_record_id(self, store, bad_id):
        with pytest.raises(ValidationError):
            store.load_record(bad_id)

    def test_load_decodes_survey_strings(self, saved):
        data = saved.load_record("village-45")
        nondh = data["nondhs"][1]
        assert "affected_s_nos" not in nondh
        assert nondh["affected_survey_numbers"] == [{"number": "12", "type": "block_no"}]


class TestDecodeSurveyNumbers:

    def test_list_of_json_strings(self):
        assert decode_survey_numbers(['{"number": "45", "type": "block_no"}']) == [
            SurveyNumber("45", SurveyKind.BLOCK),
        ]

    def test_whole_list_as_json_string(self):
        assert [s.number for s in decode_survey_numbers('["45", "46"]')] == ["45", "46"]

    def test_single_plain_string(self):
        assert decode_survey_numbers("45/1") == [SurveyNumber("45/1")]

    def test_empty(self):
        assert decode_survey_numbers(None) == []
        assert decode_survey_numbers("") == []

    def test_malformed(self):
        with pytest.raises(ValidationError):
            decode_survey_numbers('["45", ')
        with pytest.raises(ValidationError):
            decode_survey_numbers(45)


# ═══════════════════════════════════════════════════
# 2. Snapshots
# ═══════════════════════════════════════════════════

class TestSnapshots:

    def test_universe_from_basic_info_and_slabs(self, saved):
        snapshot = saved.load_snapshot("village-45")
        assert snapshot.universe_keys == frozenset({"45", "46", "12"})

    def test_chain_order(self, saved):
        snapshot = saved.load_snapshot("village-45")
        assert [n.id for n in ordered_nondhs(snapshot)] == ["n1", "n2", "n3"]

    def test_save_snapshot_keeps_basic_info(self, saved, tmp_path):
        snapshot = saved.load_snapshot("village-45")
        saved.save_snapshot("village-45", snapshot)
        data = json.loads((tmp_path / "village-45.json").read_text(encoding="utf-8"))
        assert data["basic_info"] == {"s_no": "45, 46", "block_no": "12"}
        assert data["nondhs"][0]["affected_survey_numbers"] == [{"number": "45", "type": "s_no"}]

    def test_snapshot_survives_save(self, saved):
        snapshot = saved.load_snapshot("village-45")
        saved.save_snapshot("village-45", snapshot)
        assert saved.load_snapshot("village-45") == snapshot


# ═══════════════════════════════════════════════════
# 3. RecordRepository
# ═══════════════════════════════════════════════════

class TestRepository:

    def test_store_satisfies_protocol(self, saved):
        repo: RecordRepository = saved
        assert [n.id for n in repo.load_nondhs("village-45")] == ["n1", "n2", "n3"]
        assert len(repo.load_details("village-45")) == 3

    def test_save_detail_replaces_by_id(self, saved):
        detail = saved.load_snapshot("village-45").get_detail("n1-d")
        saved.save_detail("village-45", replace(detail, invalid_reason="", old_owner="Z"))
        details = saved.load_details("village-45")
        assert len(details) == 3
        assert next(d for d in details if d.id == "n1-d").old_owner == "Z"

    def test_save_detail_for_unknown_nondh(self, saved):
        detail = saved.load_snapshot("village-45").get_detail("n1-d")
        with pytest.raises(ReferentialError):
            saved.save_detail("village-45", replace(detail, nondh_id="n9"))

    def test_save_and_delete_relation(self, saved):
        saved.save_relation("village-45", "n2-d", OwnerRelation("n2-r1", "V", Area.sq_m(50)))
        detail = next(d for d in saved.load_details("village-45") if d.id == "n2-d")
        assert [r.id for r in detail.owner_relations] == ["n2-r0", "n2-r1"]

        saved.delete_relation("village-45", "n2-r1")
        detail = next(d for d in saved.load_details("village-45") if d.id == "n2-d")
        assert [r.id for r in detail.owner_relations] == ["n2-r0"]

    def test_relation_on_unknown_detail(self, saved):
        with pytest.raises(ReferentialError):
            saved.save_relation("village-45", "n9-d", OwnerRelation("r", "V"))
        with pytest.raises(ReferentialError):
            saved.delete_relation("village-45", "missing")
