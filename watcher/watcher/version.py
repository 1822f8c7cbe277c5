"""Version parsing and comparison utilities.

This module parses the loose semantic version scheme used for image tags:
an optional prefix that contains no digits, exactly three dot-separated
numeric components and an optional free-form suffix.

Examples of accepted tags:
- 1.2.3
- v1.2.3
- release-1.2.3-alpine
- 1.2.3-rc1, 1.2.3+build.5
"""

from __future__ import annotations

import re
from functools import cmp_to_key
from typing import NamedTuple

# Regex pattern for version parsing
VERSION_PATTERN = re.compile(r"^([^0-9]*)(\d+)\.(\d+)\.(\d+)(.*)$", re.DOTALL)


class ParsedVersion(NamedTuple):
    """Parsed version components.

    ``original`` is the exact tag the version was parsed from, so that
    ``prefix + "major.minor.patch" + suffix`` rebuilds it.
    """

    original: str
    prefix: str
    major: int
    minor: int
    patch: int
    suffix: str

    @property
    def core(self) -> tuple[int, int, int, str]:
        """Return the prefix-independent identity of the version."""
        return (self.major, self.minor, self.patch, self.suffix)

    @property
    def is_release(self) -> bool:
        """Return True when the version carries no suffix."""
        return not self.suffix

    def __str__(self) -> str:
        return self.original


def is_version(tag: str | None) -> bool:
    """Check if a tag looks like a version string.

    Args:
        tag: Tag to check.

    Returns:
        True if the tag matches the version pattern, False otherwise.

    Examples:
        >>> is_version("v1.2.3")
        True
        >>> is_version("latest")
        False
    """
    if not tag:
        return False
    return VERSION_PATTERN.match(tag) is not None


def parse_version(tag: str | None) -> ParsedVersion | None:
    """Parse a tag into version components.

    Args:
        tag: Tag to parse.

    Returns:
        ParsedVersion, or None if the tag is not a version.

    Examples:
        >>> parse_version("v1.2.3-rc1")
        ParsedVersion(original='v1.2.3-rc1', prefix='v', major=1, minor=2, patch=3, suffix='-rc1')
        >>> parse_version("latest") is None
        True
    """
    if not tag:
        return None

    match = VERSION_PATTERN.match(tag)
    if match is None:
        return None

    prefix, major, minor, patch, suffix = match.groups()
    return ParsedVersion(
        original=tag,
        prefix=prefix or "",
        major=int(major),
        minor=int(minor),
        patch=int(patch),
        suffix=suffix or "",
    )


def compare_versions(a: ParsedVersion, b: ParsedVersion) -> int:
    """Compare two parsed versions.

    Numeric components are compared first. On equal numbers a release
    (empty suffix) is greater than a pre-release, and two suffixes are
    compared as plain strings.

    Args:
        a: First version.
        b: Second version.

    Returns:
        -1 if a < b
         0 if a == b
         1 if a > b

    Examples:
        >>> compare_versions(parse_version("1.2.3"), parse_version("1.3.0"))
        -1
        >>> compare_versions(parse_version("1.2.3"), parse_version("1.2.3-rc1"))
        1
    """
    if a.major != b.major:
        return -1 if a.major < b.major else 1
    if a.minor != b.minor:
        return -1 if a.minor < b.minor else 1
    if a.patch != b.patch:
        return -1 if a.patch < b.patch else 1

    if a.suffix == b.suffix:
        return 0
    # A release sorts above any pre-release of the same numbers
    if not a.suffix:
        return 1
    if not b.suffix:
        return -1
    return -1 if a.suffix < b.suffix else 1


def compare_numbers(a: ParsedVersion, b: ParsedVersion) -> int:
    """Compare two versions on major.minor.patch only, ignoring suffixes."""
    return compare_versions(a._replace(suffix=""), b._replace(suffix=""))


def sort_versions(
    versions: list[ParsedVersion],
    descending: bool = True,
    ignore_suffix: bool = False,
) -> list[ParsedVersion]:
    """Return versions sorted with :func:`compare_versions`.

    Args:
        versions: Versions to sort.
        descending: Most recent first when True.
        ignore_suffix: Compare on the numeric components only.

    Returns:
        A new sorted list. The sort is stable.
    """
    compare = compare_numbers if ignore_suffix else compare_versions
    return sorted(versions, key=cmp_to_key(compare), reverse=descending)
