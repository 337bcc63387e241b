"""Public interface for the ``ledger_pipeline`` package.

This module exposes the package's API functions and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
"""

from .api import (
    build_classifier,
    build_drain_controller,
    drain_backlog,
    ingest_file,
    remove_file,
    reprocess_user,
    run_single_cycle,
)
from .classifier import Classifier, OpenAIClassifier
from .config import Settings, load_settings
from .cycle import CycleReport, UserCycleResult, run_cycle
from .drain import DrainController, DrainReport, ReprocessResult, StopReason, reprocess
from .errors import (
    BackendTransportError,
    ClassificationBackendError,
    ConfigurationError,
    ModelUnavailableError,
    PersistenceError,
    PipelineError,
    QuotaExceededError,
    ResponseParseError,
)
from .models import (
    DELETE_SENTINEL,
    ClassificationRequest,
    ClassifiedItem,
    DraftTransaction,
    FreeTextRule,
    PromptConfig,
    RawRecord,
    RecordStatus,
    StructuredRule,
    TransactionType,
    UserContext,
)
from .normalizers import normalize_records

__all__ = [
    # API
    "build_classifier",
    "build_drain_controller",
    "drain_backlog",
    "ingest_file",
    "remove_file",
    "reprocess_user",
    "run_single_cycle",
    "run_cycle",
    "reprocess",
    "normalize_records",
    "load_settings",
    # Components
    "Classifier",
    "OpenAIClassifier",
    "DrainController",
    # Models / types
    "ClassificationRequest",
    "ClassifiedItem",
    "CycleReport",
    "DELETE_SENTINEL",
    "DraftTransaction",
    "DrainReport",
    "FreeTextRule",
    "PromptConfig",
    "RawRecord",
    "RecordStatus",
    "ReprocessResult",
    "Settings",
    "StopReason",
    "StructuredRule",
    "TransactionType",
    "UserContext",
    "UserCycleResult",
    # Errors
    "BackendTransportError",
    "ClassificationBackendError",
    "ConfigurationError",
    "ModelUnavailableError",
    "PersistenceError",
    "PipelineError",
    "QuotaExceededError",
    "ResponseParseError",
]
