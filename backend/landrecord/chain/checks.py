"""Rule-coded checks over a whole nondh chain.

Each check takes a ChainSnapshot and returns a list of finding dicts. The
resolver rejects bad mutations as they happen; these checks report what is
wrong with a chain that was loaded as-is (imported records, older data).
"""

import logging

from landrecord.config import NONDH_TYPE_LABELS, STATUS_LABELS, TRACE_ENABLED
from landrecord.chain.distribution import (
    LIMIT_OLD_OWNER,
    check_distribution,
)
from landrecord.chain.models import ChainSnapshot, NondhStatus, NondhType
from landrecord.chain.ordering import filter_affected, ordered_nondhs
from landrecord.chain.owners import get_max_date, get_min_date, is_valid_date_order
from landrecord.chain.validity import later_invalid_counts

logger = logging.getLogger(__name__)


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


def _label(snapshot: ChainSnapshot, nondh_id: str) -> str:
    nondh = snapshot.get_nondh(nondh_id)
    return f"Nondh {nondh.number}" if nondh else f"Nondh {nondh_id}"


def _type_label(detail) -> str:
    """Register term with its English label, e.g. Vechand (Sale)."""
    return f"{detail.type.value} ({NONDH_TYPE_LABELS.get(detail.type.value, detail.type.value)})"


# ═══════════════════════════════════════════════════
# 1. REQUIRED FIELDS
# ═══════════════════════════════════════════════════

def check_required_fields(snapshot: ChainSnapshot) -> list[dict]:
    """Dates, invalid reasons and old owners that must be filled in."""
    checks = []
    for detail in snapshot.details:
        label = _label(snapshot, detail.nondh_id)
        if detail.effective_date is None:
            checks.append(_make_check(
                "CHAIN_MISSING_DATE", "Nondh Date Missing",
                "MEDIUM", "WARNING",
                f"{label} ({_type_label(detail)}) has no date. Its date bounds cannot be "
                f"checked and no year slab capacity applies to it.",
                "Enter the nondh date from the mutation register.",
                f"detail_id={detail.id}",
            ))
        if detail.status == NondhStatus.INVALID and not detail.invalid_reason.strip():
            checks.append(_make_check(
                "CHAIN_MISSING_INVALID_REASON", "Radd Without Reason",
                "HIGH", "FAIL",
                f"{label} is marked invalid (Radd) but no reason is recorded.",
                "Record why the nondh was invalidated.",
                f"detail_id={detail.id}, status={detail.status.value}",
            ))
        if detail.is_transfer and not detail.old_owner_name:
            checks.append(_make_check(
                "CHAIN_MISSING_OLD_OWNER", "Transfer Without Old Owner",
                "HIGH", "FAIL",
                f"{label} is a {_type_label(detail)} entry but does not name the old owner "
                f"whose holding it transfers.",
                "Select the old owner from the previous owners of this survey number.",
                f"detail_id={detail.id}, type={detail.type.value}",
            ))
    return checks


# ═══════════════════════════════════════════════════
# 2. DATES
# ═══════════════════════════════════════════════════

def check_date_order(snapshot: ChainSnapshot) -> list[dict]:
    """Nondh dates must fall between their neighbours' dates."""
    checks = []
    for nondh in ordered_nondhs(snapshot):
        detail = snapshot.detail_for(nondh.id)
        if detail is None or detail.effective_date is None:
            continue
        if is_valid_date_order(snapshot, nondh.id, detail.effective_date):
            continue
        min_date = get_min_date(snapshot, nondh.id)
        max_date = get_max_date(snapshot, nondh.id)
        checks.append(_make_check(
            "CHAIN_DATE_ORDER", "Nondh Date Out Of Order",
            "HIGH", "WARNING",
            f"Nondh {nondh.number} is dated {detail.effective_date.isoformat()}, outside the "
            f"range allowed by its neighbours in the chain "
            f"({min_date.isoformat() if min_date else 'open'} to "
            f"{max_date.isoformat() if max_date else 'open'}).",
            "Verify the nondh date and number against the mutation register.",
            f"nondh_id={nondh.id}, date={detail.effective_date.isoformat()}",
        ))
    return checks


# ═══════════════════════════════════════════════════
# 3. AREAS
# ═══════════════════════════════════════════════════

def check_area_distribution(snapshot: ChainSnapshot) -> list[dict]:
    """New-owner totals against old-owner holdings and year slab capacity."""
    checks = []
    for detail in snapshot.details:
        if detail.status in (NondhStatus.INVALID, NondhStatus.NULLIFIED):
            continue
        result = check_distribution(snapshot, detail)
        if result.ok:
            continue
        label = _label(snapshot, detail.nondh_id)
        if result.violated == LIMIT_OLD_OWNER:
            checks.append(_make_check(
                "CHAIN_AREA_OLD_OWNER", "Transferred Area Exceeds Holding",
                "CRITICAL", "FAIL",
                f"{label}: {result.message}. The old owner '{detail.old_owner_name}' cannot "
                f"transfer more than they held.",
                "Re-check the areas given to each new owner against the previous nondh.",
                f"detail_id={detail.id}, new_owner_total={result.new_owner_total:.2f}, "
                f"remaining={result.old_owner_remaining:.2f}",
            ))
        else:
            checks.append(_make_check(
                "CHAIN_AREA_SLAB", "Area Exceeds Year Slab",
                "HIGH", "FAIL",
                f"{label}: {result.message}.",
                "Verify the year slab area and the owner areas for this period.",
                f"detail_id={detail.id}, total={result.total:.2f}, "
                f"capacity={result.slab_capacity:.2f}",
            ))
    return checks


# ═══════════════════════════════════════════════════
# 4. REFERENCES & SURVEY NUMBERS
# ═══════════════════════════════════════════════════

def check_affected_references(snapshot: ChainSnapshot) -> list[dict]:
    """Order annotations must point at existing nondhs and carry reasons."""
    checks = []
    for detail in snapshot.details:
        if detail.type != NondhType.ORDER or not detail.order:
            continue
        label = _label(snapshot, detail.nondh_id)
        for ann in detail.order.affected:
            if snapshot.get_nondh(ann.target_nondh_id) is None:
                checks.append(_make_check(
                    "CHAIN_DANGLING_AFFECTED", "Affected Nondh Missing",
                    "MEDIUM", "WARNING",
                    f"{label} (order) lists an affected nondh that no longer exists. "
                    f"The reference is ignored.",
                    "Remove the stale reference or restore the deleted nondh.",
                    f"detail_id={detail.id}, target_nondh_id={ann.target_nondh_id}",
                ))
            elif ann.status == NondhStatus.INVALID and not ann.invalid_reason.strip():
                checks.append(_make_check(
                    "CHAIN_AFFECTED_REASON", "Affected Nondh Reason Missing",
                    "MEDIUM", "WARNING",
                    f"{label} (order) marks {_label(snapshot, ann.target_nondh_id)} invalid "
                    f"without a reason.",
                    "Record the reason given in the order.",
                    f"detail_id={detail.id}, annotation_id={ann.id}",
                ))
    return checks


def check_survey_numbers(snapshot: ChainSnapshot) -> list[dict]:
    """Nondhs whose survey numbers are all outside the record sort last."""
    if not snapshot.survey_universe:
        return []
    checks = []
    for nondh in snapshot.nondhs:
        if filter_affected(nondh, snapshot.universe_keys):
            continue
        listed = ", ".join(sn.number for sn in nondh.affected_survey_numbers) or "none"
        checks.append(_make_check(
            "CHAIN_UNKNOWN_SURVEY", "Nondh Survey Number Not In Record",
            "MEDIUM", "WARNING",
            f"Nondh {nondh.number} affects survey numbers ({listed}) that are not part of "
            f"this land record. It is placed at the end of the chain.",
            "Correct the affected survey numbers or add them to the basic info / year slabs.",
            f"nondh_id={nondh.id}",
        ))
    return checks


def check_year_slab_order(snapshot: ChainSnapshot) -> list[dict]:
    """Year slabs are listed newest first and must not overlap."""
    checks = []
    previous = None
    for slab in snapshot.year_slabs:
        if slab.start_year > slab.end_year:
            checks.append(_make_check(
                "CHAIN_SLAB_RANGE", "Year Slab Range Invalid",
                "HIGH", "FAIL",
                f"Year slab {slab.start_year}-{slab.end_year} starts after it ends.",
                "Correct the slab's start and end years.",
                f"slab_id={slab.id}",
            ))
        if previous is not None and slab.end_year > previous.start_year:
            checks.append(_make_check(
                "CHAIN_SLAB_ORDER", "Year Slabs Out Of Order",
                "MEDIUM", "WARNING",
                f"Year slab {slab.start_year}-{slab.end_year} ends after the slab before it "
                f"starts ({previous.start_year}-{previous.end_year}).",
                "List year slabs from newest to oldest without overlaps.",
                f"slab_id={slab.id}, previous_slab_id={previous.id}",
            ))
        previous = slab
    return checks


def check_validity_divergence(snapshot: ChainSnapshot) -> list[dict]:
    """Valid-status nondhs whose relations a later invalidation suppressed.

    Previous-owner pools still draw from these nondhs.
    """
    checks = []
    counts = later_invalid_counts(snapshot)
    for detail in snapshot.details:
        if detail.status != NondhStatus.VALID or not detail.owner_relations:
            continue
        if counts.get(detail.nondh_id, 0) % 2 == 0:
            continue
        checks.append(_make_check(
            "CHAIN_VALIDITY_DIVERGENCE", "Suppressed Nondh Still Feeds Owner Pool",
            "LOW", "INFO",
            f"{_label(snapshot, detail.nondh_id)} has status valid ({STATUS_LABELS[NondhStatus.VALID.value]}) but "
            f"{counts[detail.nondh_id]} later invalidation(s) mark its owners invalid. "
            f"Its owners remain selectable as previous owners.",
            "Confirm whether the later invalidation should also cancel this nondh.",
            f"detail_id={detail.id}",
        ))
    return checks


def _make_check(rule_code: str, rule_name: str, severity: str, status: str,
                explanation: str, recommendation: str, evidence: str) -> dict:
    """Create a standardized check result dict."""
    return {
        "rule_code": rule_code,
        "rule_name": rule_name,
        "severity": severity,
        "status": status,
        "explanation": explanation,
        "recommendation": recommendation,
        "evidence": evidence,
        "source": "deterministic",
    }


# ═══════════════════════════════════════════════════
# MAIN ENTRY POINT
# ═══════════════════════════════════════════════════

CHECK_FUNCTIONS = [
    ("Fields: Required", check_required_fields),
    ("Dates: Chain order", check_date_order),
    ("Area: Distribution", check_area_distribution),
    ("References: Affected nondhs", check_affected_references),
    ("Survey: Universe membership", check_survey_numbers),
    ("Slabs: Year order", check_year_slab_order),
    ("Validity: Status divergence", check_validity_divergence),
]


def run_chain_checks(snapshot: ChainSnapshot) -> list[dict]:
    """Run all chain checks and return a flat list of check results.

    A check that raises is logged and skipped; the others still run.
    """
    all_checks = []
    for label, fn in CHECK_FUNCTIONS:
        try:
            results = fn(snapshot)
            if results:
                logger.info(f"Chain [{label}]: {len(results)} check(s) generated")
            all_checks.extend(results)
        except Exception as e:
            logger.error(f"Chain [{label}] failed: {e}")
    _trace(f"Chain checks total: {len(all_checks)}")
    return all_checks
