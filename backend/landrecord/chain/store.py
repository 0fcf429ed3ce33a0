"""File-backed record store.

One JSON file per land record under RECORDS_DIR holding the nondhs, their
details, the basic info and the year slabs. Writes are atomic: the JSON is
written to a temp file in the same directory and moved into place with
os.replace().
"""

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Optional, Protocol

from landrecord.config import RECORDS_DIR
from landrecord.chain.errors import ReferentialError, ValidationError
from landrecord.chain.models import (
    ChainSnapshot,
    Nondh,
    NondhDetail,
    OwnerRelation,
    SurveyNumber,
    YearSlab,
)
from landrecord.chain.ordering import build_survey_universe

logger = logging.getLogger(__name__)

_RECORD_ID_RE = re.compile(r"^[A-Za-z0-9_\-]{1,64}$")


class RecordRepository(Protocol):
    """Persistence collaborator used by callers of the chain resolver."""

    def load_nondhs(self, record_id: str) -> list[Nondh]: ...

    def load_details(self, record_id: str) -> list[NondhDetail]: ...

    def save_detail(self, record_id: str, detail: NondhDetail) -> None: ...

    def save_relation(self, record_id: str, detail_id: str, relation: OwnerRelation) -> None: ...

    def delete_relation(self, record_id: str, relation_id: str) -> None: ...


def decode_survey_numbers(raw: Any) -> list[SurveyNumber]:
    """Decode a stored list of survey numbers.

    Accepts a list of dicts, JSON-encoded strings or plain numbers, or the
    whole list serialized as one JSON string.
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        stripped = raw.strip()
        if stripped.startswith("["):
            try:
                raw = json.loads(stripped)
            except json.JSONDecodeError:
                raise ValidationError(f"Malformed survey number list: {raw!r}")
        else:
            raw = [raw]
    if not isinstance(raw, list):
        raise ValidationError(f"Malformed survey number list: {raw!r}")
    return [SurveyNumber.from_value(item) for item in raw]


class RecordStore:
    """JSON file per record; implements RecordRepository."""

    def __init__(self, records_dir: Optional[Path] = None):
        self.records_dir = Path(records_dir) if records_dir else RECORDS_DIR
        self.records_dir.mkdir(parents=True, exist_ok=True)

    # ── Files ──

    def _path(self, record_id: str) -> Path:
        if not record_id or not _RECORD_ID_RE.match(record_id):
            raise ValidationError(f"Invalid record id: {record_id!r}", details={"record_id": record_id})
        return self.records_dir / f"{record_id}.json"

    def exists(self, record_id: str) -> bool:
        return self._path(record_id).exists()

    def list_records(self) -> list[str]:
        return sorted(p.stem for p in self.records_dir.glob("*.json"))

    def load_record(self, record_id: str) -> dict:
        path = self._path(record_id)
        if not path.exists():
            raise FileNotFoundError(f"Record {record_id} not found")
        data = json.loads(path.read_text(encoding="utf-8"))
        for nondh in data.get("nondhs") or []:
            raw = nondh.pop("affected_s_nos", None)
            if "affected_survey_numbers" in nondh:
                raw = nondh["affected_survey_numbers"]
            nondh["affected_survey_numbers"] = [s.to_dict() for s in decode_survey_numbers(raw)]
        return data

    def save_record(self, record_id: str, data: dict) -> None:
        """Persist a record dict (atomic write)."""
        path = self._path(record_id)
        payload = json.dumps(data, indent=2, default=str, ensure_ascii=False)
        # Temp file in the same directory so os.replace() is same-device
        fd, tmp_path = tempfile.mkstemp(dir=str(self.records_dir), suffix=".tmp", prefix="rec_")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                tmp.write(payload)
            os.replace(tmp_path, str(path))
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        logger.debug(f"Record {record_id} saved ({len(payload)} bytes)")

    def delete_record(self, record_id: str) -> None:
        path = self._path(record_id)
        if not path.exists():
            raise FileNotFoundError(f"Record {record_id} not found")
        path.unlink()

    # ── Snapshots ──

    def load_snapshot(self, record_id: str) -> ChainSnapshot:
        """Build a snapshot; the survey universe is derived from basic info + slabs."""
        data = self.load_record(record_id)
        year_slabs = tuple(YearSlab.from_dict(s) for s in data.get("year_slabs") or [])
        universe = build_survey_universe(data.get("basic_info"), year_slabs)
        snapshot = ChainSnapshot(
            nondhs=tuple(Nondh.from_dict(n) for n in data.get("nondhs") or []),
            details=tuple(NondhDetail.from_dict(d) for d in data.get("details") or []),
            survey_universe=universe,
            year_slabs=year_slabs,
        )
        logger.info(
            f"Record {record_id}: loaded {len(snapshot.nondhs)} nondhs, "
            f"{len(snapshot.details)} details, {len(year_slabs)} year slabs"
        )
        return snapshot

    def save_snapshot(self, record_id: str, snapshot: ChainSnapshot, basic_info: Optional[dict] = None) -> None:
        """Write a snapshot back, keeping the stored basic info unless one is given."""
        if basic_info is None and self.exists(record_id):
            basic_info = self.load_record(record_id).get("basic_info")
        data = {
            "record_id": record_id,
            "basic_info": basic_info or {},
            "nondhs": [n.to_dict() for n in snapshot.nondhs],
            "details": [d.to_dict() for d in snapshot.details],
            "year_slabs": [s.to_dict() for s in snapshot.year_slabs],
        }
        self.save_record(record_id, data)

    # ── RecordRepository ──

    def load_nondhs(self, record_id: str) -> list[Nondh]:
        return list(self.load_snapshot(record_id).nondhs)

    def load_details(self, record_id: str) -> list[NondhDetail]:
        return list(self.load_snapshot(record_id).details)

    def save_detail(self, record_id: str, detail: NondhDetail) -> None:
        """Insert or replace a detail by id."""
        data = self.load_record(record_id)
        if not any(n.get("id") == detail.nondh_id for n in data.get("nondhs") or []):
            raise ReferentialError(
                f"Nondh {detail.nondh_id} not found in record {record_id}",
                details={"record_id": record_id, "nondh_id": detail.nondh_id},
            )
        details = [d for d in data.get("details") or [] if d.get("id") != detail.id]
        details.append(detail.to_dict())
        data["details"] = details
        self.save_record(record_id, data)

    def save_relation(self, record_id: str, detail_id: str, relation: OwnerRelation) -> None:
        """Insert or replace an owner relation on a stored detail."""
        data = self.load_record(record_id)
        for d in data.get("details") or []:
            if d.get("id") == detail_id:
                relations = [r for r in d.get("owner_relations") or [] if r.get("id") != relation.id]
                relations.append(relation.to_dict())
                d["owner_relations"] = relations
                self.save_record(record_id, data)
                return
        raise ReferentialError(
            f"Detail {detail_id} not found in record {record_id}",
            details={"record_id": record_id, "detail_id": detail_id},
        )

    def delete_relation(self, record_id: str, relation_id: str) -> None:
        data = self.load_record(record_id)
        for d in data.get("details") or []:
            relations = d.get("owner_relations") or []
            kept = [r for r in relations if r.get("id") != relation_id]
            if len(kept) != len(relations):
                d["owner_relations"] = kept
                self.save_record(record_id, data)
                return
        raise ReferentialError(
            f"Relation {relation_id} not found in record {record_id}",
            details={"record_id": record_id, "relation_id": relation_id},
        )
