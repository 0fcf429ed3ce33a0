"""Nondh chain resolver: ordering, validity, owner pools, areas and passbook."""

from .errors import (
    ChainError,
    ValidationError,
    AreaDistributionError,
    ReferentialError,
    ChainIntegrityError,
)
from .models import (
    SurveyKind,
    SurveyNumber,
    Area,
    AreaUnit,
    OwnerRelation,
    NondhType,
    NondhStatus,
    Ganot,
    OrderAuthority,
    AffectedNondh,
    OrderDetails,
    SaleDetails,
    Nondh,
    NondhDetail,
    SlabEntry,
    YearSlab,
    ChainSnapshot,
)
from .ordering import build_survey_universe, sort_nondhs, ordered_nondhs
from .validity import propagate_validity, set_affected, toggle_affected_status
from .owners import (
    PreviousOwner,
    get_previous_owners,
    get_ganot_owners,
    get_min_date,
    get_max_date,
    is_valid_date_order,
)
from .distribution import (
    DistributionCheck,
    check_distribution,
    validate_distribution,
    year_slab_capacity,
    equal_share,
)
from .passbook import PassbookRow, build_passbook, summarize_passbook
from .checks import run_chain_checks
from .resolver import ChainResolver, validate_detail
from .store import RecordRepository, RecordStore, decode_survey_numbers

__all__ = [
    "ChainError",
    "ValidationError",
    "AreaDistributionError",
    "ReferentialError",
    "ChainIntegrityError",
    "SurveyKind",
    "SurveyNumber",
    "Area",
    "AreaUnit",
    "OwnerRelation",
    "NondhType",
    "NondhStatus",
    "Ganot",
    "OrderAuthority",
    "AffectedNondh",
    "OrderDetails",
    "SaleDetails",
    "Nondh",
    "NondhDetail",
    "SlabEntry",
    "YearSlab",
    "ChainSnapshot",
    "build_survey_universe",
    "sort_nondhs",
    "ordered_nondhs",
    "propagate_validity",
    "set_affected",
    "toggle_affected_status",
    "PreviousOwner",
    "get_previous_owners",
    "get_ganot_owners",
    "get_min_date",
    "get_max_date",
    "is_valid_date_order",
    "DistributionCheck",
    "check_distribution",
    "validate_distribution",
    "year_slab_capacity",
    "equal_share",
    "PassbookRow",
    "build_passbook",
    "summarize_passbook",
    "run_chain_checks",
    "ChainResolver",
    "validate_detail",
    "RecordRepository",
    "RecordStore",
    "decode_survey_numbers",
]
