"""Classification of available tags relative to a current version.

Given the version a workload currently runs and the tags published for its
image, this module keeps the strictly newer versions and groups them into
major, minor and patch buckets. An update strategy then selects which
buckets are offered for upgrade.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .models import UpdateStrategy
from .version import compare_numbers, compare_versions, parse_version, sort_versions

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .version import ParsedVersion

# Prefix treated as canonical when a release is published twice
CANONICAL_PREFIX = "v"


@dataclass(frozen=True)
class VersionBuckets:
    """Newer versions grouped by the kind of change, most recent first."""

    all: list[ParsedVersion] = field(default_factory=list)
    majors: list[ParsedVersion] = field(default_factory=list)
    minors: list[ParsedVersion] = field(default_factory=list)
    patches: list[ParsedVersion] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.all


def _is_newer(
    candidate: ParsedVersion,
    current: ParsedVersion,
    require_same_suffix: bool,
) -> bool:
    if require_same_suffix:
        if candidate.suffix != current.suffix:
            return False
        return compare_versions(candidate, current) > 0
    return compare_numbers(candidate, current) > 0


def _drop_prefix_duplicates(versions: list[ParsedVersion]) -> list[ParsedVersion]:
    """Remove versions whose canonical ``v``-prefixed twin is also present.

    Registries often publish the same release as ``1.2.3`` and ``v1.2.3``;
    only the ``v`` form is kept.
    """
    canonical = {v.core for v in versions if v.prefix == CANONICAL_PREFIX}
    return [v for v in versions if v.prefix == CANONICAL_PREFIX or v.core not in canonical]


def classify(
    current_tag: str | None,
    candidate_tags: Iterable[str],
    require_same_suffix: bool = True,
) -> VersionBuckets:
    """Bucket the tags that are newer than the current version.

    Args:
        current_tag: Tag of the version currently deployed.
        candidate_tags: Tag names published in the registry.
        require_same_suffix: Only accept candidates carrying the same suffix
            as the current version (``-alpine`` stays on ``-alpine``).

    Returns:
        VersionBuckets; every bucket is empty when the current tag is not
        a version.
    """
    current = parse_version(current_tag)
    if current is None:
        return VersionBuckets()

    parsed = [v for v in (parse_version(tag) for tag in candidate_tags) if v is not None]
    newer = [v for v in parsed if _is_newer(v, current, require_same_suffix)]
    newer = _drop_prefix_duplicates(newer)

    if not newer:
        return VersionBuckets()

    ignore_suffix = not require_same_suffix
    majors = [v for v in newer if v.major > current.major]
    minors = [v for v in newer if v.major == current.major and v.minor > current.minor]
    patches = [
        v
        for v in newer
        if v.major == current.major and v.minor == current.minor and v.patch > current.patch
    ]

    return VersionBuckets(
        all=sort_versions(newer, ignore_suffix=ignore_suffix),
        majors=sort_versions(majors, ignore_suffix=ignore_suffix),
        minors=sort_versions(minors, ignore_suffix=ignore_suffix),
        patches=sort_versions(patches, ignore_suffix=ignore_suffix),
    )


def select_candidates(buckets: VersionBuckets, strategy: UpdateStrategy) -> list[ParsedVersion]:
    """Return the versions a strategy allows, preferred upgrade first.

    The buckets are concatenated from the widest to the narrowest change
    without re-sorting, so the head of the result is the most recent
    version of the widest allowed bucket.

    Args:
        buckets: Output of :func:`classify`.
        strategy: Update strategy of the workload.

    Returns:
        Candidate versions, possibly empty.
    """
    if strategy == UpdateStrategy.ALL:
        return list(buckets.all)
    if strategy == UpdateStrategy.MAJOR:
        return [*buckets.majors, *buckets.minors, *buckets.patches]
    if strategy == UpdateStrategy.MINOR:
        return [*buckets.minors, *buckets.patches]
    if strategy == UpdateStrategy.PATCH:
        return list(buckets.patches)
    raise ValueError(f"Unknown update strategy: {strategy}")
