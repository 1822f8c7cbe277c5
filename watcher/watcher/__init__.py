"""Image-Watcher Core Library.

Core library of the image-watcher system: version classification, the
update decision engine and the upgrade confirmation gate.

Module Overview:
    version: Version parsing and comparison
    classifier: Major/minor/patch bucketing and strategy selection
    reminder: Reminder policy of notification mode
    engine: Per-workload decision state machine and decision cycles
    gate: One-shot upgrade confirmation with rate limiting and locking
    chunker: Message splitting for size-limited channels
    annotations: Workload annotation keys, parsing and serialization
    models: Pydantic data models
    interfaces: Abstract provider interfaces and provider errors
    services: Provider registries used by the engine
    release_notes: Release notes fetching, summarization and formatting
    images: Image reference parsing
    config: YAML and environment settings (XDG spec compliant)
    logging: structlog configuration
    api: aiohttp confirmation endpoint
    schedule: Cron-driven cycle runner

The core modules perform no network I/O themselves; concrete providers
live in the ``providers`` package.
"""

from importlib.metadata import version as get_package_version

from watcher.annotations import (
    ANNOTATION_META,
    AnnotationKey,
    AnnotationKind,
    AnnotationMeta,
    parse_workload_config,
    serialize_changes,
)
from watcher.chunker import UNBOUNDED, split_message
from watcher.classifier import VersionBuckets, classify, select_candidates
from watcher.config import ConfigManager, SettingsError, WatcherSettings, get_config_dir
from watcher.engine import Evaluation, UpdateEngine, match_digest
from watcher.gate import (
    ConfirmationGate,
    ConfirmationResult,
    ConfirmationStatus,
    LockSet,
    RateLimiter,
)
from watcher.images import parse_image
from watcher.interfaces import (
    ConfigurationError,
    NotificationProvider,
    OrchestratorProvider,
    ProviderError,
    RegistryProvider,
    ReleaseProvider,
    SummarizerProvider,
    UnavailableError,
    WorkloadNotFoundError,
)
from watcher.models import (
    CycleSummary,
    Decision,
    DecisionOutcome,
    ImageReference,
    NotificationResult,
    ReleaseInfo,
    Tag,
    UpdateMode,
    UpdateStrategy,
    Workload,
    WorkloadConfig,
)
from watcher.reminder import ReminderDecision, evaluate_reminder
from watcher.services import (
    NotificationService,
    OrchestratorService,
    RegistryService,
    ReleaseService,
    Services,
    SummarizerService,
)
from watcher.version import (
    ParsedVersion,
    compare_versions,
    is_version,
    parse_version,
    sort_versions,
)

__version__ = get_package_version("image-watcher")

__all__ = [
    "ANNOTATION_META",
    "UNBOUNDED",
    "AnnotationKey",
    "AnnotationKind",
    "AnnotationMeta",
    "ConfigManager",
    "ConfigurationError",
    "ConfirmationGate",
    "ConfirmationResult",
    "ConfirmationStatus",
    "CycleSummary",
    "Decision",
    "DecisionOutcome",
    "Evaluation",
    "ImageReference",
    "LockSet",
    "NotificationProvider",
    "NotificationResult",
    "NotificationService",
    "OrchestratorProvider",
    "OrchestratorService",
    "ParsedVersion",
    "ProviderError",
    "RateLimiter",
    "RegistryProvider",
    "RegistryService",
    "ReleaseInfo",
    "ReleaseProvider",
    "ReleaseService",
    "ReminderDecision",
    "Services",
    "SettingsError",
    "SummarizerProvider",
    "SummarizerService",
    "Tag",
    "UnavailableError",
    "UpdateEngine",
    "UpdateMode",
    "UpdateStrategy",
    "VersionBuckets",
    "WatcherSettings",
    "Workload",
    "WorkloadConfig",
    "WorkloadNotFoundError",
    "__version__",
    "classify",
    "compare_versions",
    "evaluate_reminder",
    "get_config_dir",
    "is_version",
    "match_digest",
    "parse_image",
    "parse_version",
    "parse_workload_config",
    "select_candidates",
    "serialize_changes",
    "sort_versions",
    "split_message",
]
