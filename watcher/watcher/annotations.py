"""Workload annotations.

Watcher configuration and history are stored as annotations on the
workload itself. This module lists the recognized keys with their
metadata, turns raw annotations into a typed :class:`WorkloadConfig` and
serializes changes back to annotation values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from .models import UpdateMode, UpdateStrategy, WorkloadConfig

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .config import WatcherSettings

logger = structlog.get_logger(__name__)

ANNOTATION_PREFIX = "image-watcher/"

TRUE_VALUES = frozenset({"true", "1", "yes", "on"})
FALSE_VALUES = frozenset({"false", "0", "no", "off"})


class AnnotationKey(str, Enum):
    """Annotation keys read and written by the watcher."""

    WATCH = "image-watcher/watch"
    MODE = "image-watcher/mode"
    STRATEGY = "image-watcher/strategy"
    CURRENT_VERSION = "image-watcher/current-version"
    PREVIOUS_VERSION = "image-watcher/previous-version"
    LAST_UPDATED = "image-watcher/last-updated"
    LAST_UPDATED_VERSION = "image-watcher/last-updated-version"
    LAST_NOTIFIED = "image-watcher/last-notified"
    LAST_NOTIFIED_VERSION = "image-watcher/last-notified-version"
    TOKEN_UPDATE = "image-watcher/token-update"
    RELEASE_URL = "image-watcher/release-url"


class AnnotationKind(str, Enum):
    """Who owns an annotation."""

    CONFIGURATION = "CONFIGURATION"  # set by the user
    INTERNAL = "INTERNAL"  # written by the watcher


@dataclass(frozen=True)
class AnnotationMeta:
    """Metadata of a recognized annotation."""

    description: str
    kind: AnnotationKind
    default: Any = None
    options: tuple[Any, ...] = field(default_factory=tuple)


ANNOTATION_META: dict[AnnotationKey, AnnotationMeta] = {
    AnnotationKey.WATCH: AnnotationMeta(
        description="Whether the workload is watched",
        kind=AnnotationKind.CONFIGURATION,
        default=True,
        options=(True, False),
    ),
    AnnotationKey.MODE: AnnotationMeta(
        description="Reaction to a newer version",
        kind=AnnotationKind.CONFIGURATION,
        default=UpdateMode.AUTO_UPDATE,
        options=tuple(UpdateMode),
    ),
    AnnotationKey.STRATEGY: AnnotationMeta(
        description="Breadth of the accepted updates",
        kind=AnnotationKind.CONFIGURATION,
        default=UpdateStrategy.ALL,
        options=tuple(UpdateStrategy),
    ),
    AnnotationKey.RELEASE_URL: AnnotationMeta(
        description="Release notes URL template",
        kind=AnnotationKind.CONFIGURATION,
    ),
    AnnotationKey.CURRENT_VERSION: AnnotationMeta(
        description="Current version",
        kind=AnnotationKind.INTERNAL,
    ),
    AnnotationKey.PREVIOUS_VERSION: AnnotationMeta(
        description="Version before the last upgrade",
        kind=AnnotationKind.INTERNAL,
    ),
    AnnotationKey.LAST_UPDATED: AnnotationMeta(
        description="Time of the last applied upgrade",
        kind=AnnotationKind.INTERNAL,
    ),
    AnnotationKey.LAST_UPDATED_VERSION: AnnotationMeta(
        description="Version of the last applied upgrade",
        kind=AnnotationKind.INTERNAL,
    ),
    AnnotationKey.LAST_NOTIFIED: AnnotationMeta(
        description="Time of the last notification",
        kind=AnnotationKind.INTERNAL,
    ),
    AnnotationKey.LAST_NOTIFIED_VERSION: AnnotationMeta(
        description="Version announced by the last notification",
        kind=AnnotationKind.INTERNAL,
    ),
    AnnotationKey.TOKEN_UPDATE: AnnotationMeta(
        description="Token of the pending upgrade confirmation",
        kind=AnnotationKind.INTERNAL,
    ),
}


def has_watcher_annotation(annotations: Mapping[str, str]) -> bool:
    """Return True if any annotation belongs to the watcher."""
    return any(ANNOTATION_PREFIX in key.lower() for key in annotations)


def _lookup(annotations: Mapping[str, str], key: AnnotationKey) -> str | None:
    value = annotations.get(key.value)
    if value is None:
        value = annotations.get(key.value.lower())
    return value


def _normalize_option(key: AnnotationKey, raw: Any) -> Any:
    """Map a raw value onto the closed option set of a key."""
    meta = ANNOTATION_META[key]

    if isinstance(raw, str):
        text = raw.strip()
        if key == AnnotationKey.WATCH:
            if text.lower() in TRUE_VALUES:
                return True
            if text.lower() in FALSE_VALUES:
                return False
        else:
            for option in meta.options:
                if text.upper() == option.value:
                    return option
    elif raw in meta.options:
        return raw

    logger.warning(
        "unsupported_annotation_value",
        key=key.value,
        value=raw,
        options=[getattr(o, "value", o) for o in meta.options],
        default=getattr(meta.default, "value", meta.default),
    )
    return meta.default


def resolve_option(
    annotations: Mapping[str, str],
    key: AnnotationKey,
    environment: str | None,
    override: bool = False,
) -> Any:
    """Resolve a configuration key with an option set.

    The annotation wins over the environment default unless ``override`` is
    set, in which case the environment wins. Blank or invalid values fall
    back to the key's default.

    Args:
        annotations: Raw annotations of the workload.
        key: Key to resolve.
        environment: Process-wide default for the key, if any.
        override: Whether the environment takes precedence.

    Returns:
        The resolved option.
    """
    direct = _lookup(annotations, key)
    candidates = (environment, direct) if override else (direct, environment)
    raw = next((c for c in candidates if c is not None and c.strip() != ""), None)

    if raw is None:
        return ANNOTATION_META[key].default
    return _normalize_option(key, raw)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, returning None when it is invalid."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        logger.warning("invalid_annotation_timestamp", value=value)
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def parse_workload_config(
    annotations: Mapping[str, str],
    settings: WatcherSettings | None = None,
) -> WorkloadConfig:
    """Build the typed configuration of a workload from its annotations.

    Args:
        annotations: Raw annotations of the workload.
        settings: Process-wide settings providing environment defaults.

    Returns:
        WorkloadConfig; unrecognized values are replaced by defaults.
    """
    override = settings.override_annotations if settings else False

    def option(key: AnnotationKey, environment: str | None) -> Any:
        return resolve_option(annotations, key, environment, override=override)

    return WorkloadConfig(
        watch_enabled=option(AnnotationKey.WATCH, settings.default_watch if settings else None),
        mode=option(AnnotationKey.MODE, settings.default_mode if settings else None),
        strategy=option(AnnotationKey.STRATEGY, settings.default_strategy if settings else None),
        current_version=_lookup(annotations, AnnotationKey.CURRENT_VERSION) or None,
        previous_version=_lookup(annotations, AnnotationKey.PREVIOUS_VERSION) or None,
        last_updated_at=parse_timestamp(_lookup(annotations, AnnotationKey.LAST_UPDATED)),
        last_updated_version=_lookup(annotations, AnnotationKey.LAST_UPDATED_VERSION) or None,
        last_notified_at=parse_timestamp(_lookup(annotations, AnnotationKey.LAST_NOTIFIED)),
        last_notified_version=_lookup(annotations, AnnotationKey.LAST_NOTIFIED_VERSION) or None,
        pending_upgrade_token=_lookup(annotations, AnnotationKey.TOKEN_UPDATE) or None,
        release_url_template=_lookup(annotations, AnnotationKey.RELEASE_URL) or None,
    )


def effective_mode(mode: UpdateMode, settings: WatcherSettings | None = None) -> UpdateMode:
    """Resolve the ``DEFAULT`` mode.

    ``DEFAULT`` means the process-wide default mode when one is configured
    and is not itself ``DEFAULT``, and auto-update otherwise.
    """
    if mode != UpdateMode.DEFAULT:
        return mode

    if settings is not None and settings.default_mode:
        configured = settings.default_mode.strip().upper()
        if configured in UpdateMode.__members__ and configured != UpdateMode.DEFAULT.value:
            return UpdateMode(configured)
    return UpdateMode.AUTO_UPDATE


def get_zone(name: str | None) -> ZoneInfo:
    """Return a time zone, falling back to UTC for unknown names."""
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("unknown_timezone", timezone=name)
        return ZoneInfo("UTC")


def format_timestamp(value: datetime, timezone: str | None = None) -> str:
    """Format a timestamp as ISO-8601 with an explicit offset.

    Examples:
        >>> format_timestamp(datetime(2025, 11, 6, 19, 15, tzinfo=UTC), "Europe/Paris")
        '2025-11-06T20:15:00+01:00'
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(get_zone(timezone)).replace(microsecond=0).isoformat()


def serialize_changes(
    changes: Mapping[AnnotationKey, Any],
    timezone: str | None = None,
) -> dict[str, str | None]:
    """Turn typed annotation changes into raw annotation values.

    Timestamps are written in the configured time zone, booleans as
    ``"true"``/``"false"`` and enums by value. ``None`` is kept so the
    orchestrator removes the annotation.
    """
    serialized: dict[str, str | None] = {}
    for key, value in changes.items():
        if value is None:
            serialized[key.value] = None
        elif isinstance(value, datetime):
            serialized[key.value] = format_timestamp(value, timezone)
        elif isinstance(value, bool):
            serialized[key.value] = "true" if value else "false"
        elif isinstance(value, Enum):
            serialized[key.value] = str(value.value)
        else:
            serialized[key.value] = str(value)
    return serialized
