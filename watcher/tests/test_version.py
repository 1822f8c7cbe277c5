"""Tests for version parsing and comparison utilities."""

from __future__ import annotations

import itertools

import pytest

from watcher.version import (
    ParsedVersion,
    compare_numbers,
    compare_versions,
    is_version,
    parse_version,
    sort_versions,
)

SAMPLE_TAGS = [
    "1.2.3",
    "v1.2.3",
    "1.2.3-rc1",
    "1.2.3-rc2",
    "1.2.4",
    "v2.0.0-alpine",
    "release-10.0.1",
    "0.0.1",
]


class TestParseVersion:
    """Tests for parse_version function."""

    def test_parse_plain_version(self) -> None:
        """Test parsing a plain semantic version."""
        result = parse_version("1.2.3")
        assert result == ParsedVersion("1.2.3", "", 1, 2, 3, "")

    def test_parse_prefix_and_suffix(self) -> None:
        """Test parsing a version with a prefix and a suffix."""
        result = parse_version("release-10.0.1-alpine")
        assert result is not None
        assert result.prefix == "release-"
        assert (result.major, result.minor, result.patch) == (10, 0, 1)
        assert result.suffix == "-alpine"

    @pytest.mark.parametrize("tag", ["latest", "1.2", "stable-1", "", None, "1.x.3"])
    def test_non_versions(self, tag: str | None) -> None:
        """Tags without three numeric components are not versions."""
        assert parse_version(tag) is None
        assert is_version(tag) is False

    @pytest.mark.parametrize("tag", SAMPLE_TAGS)
    def test_original_is_preserved(self, tag: str) -> None:
        """The original tag is kept and agrees with is_version."""
        result = parse_version(tag)
        assert result is not None
        assert result.original == tag
        assert str(result) == tag
        assert is_version(tag)

    def test_core_ignores_prefix(self) -> None:
        """Prefixed and unprefixed forms share the same core."""
        assert parse_version("v1.2.3").core == parse_version("1.2.3").core

    def test_is_release(self) -> None:
        """Only versions without suffix are releases."""
        assert parse_version("1.2.3").is_release
        assert not parse_version("1.2.3-rc1").is_release


class TestCompareVersions:
    """Tests for compare_versions function."""

    def test_numeric_ordering(self) -> None:
        """Components compare numerically, not lexically."""
        assert compare_versions(parse_version("1.10.0"), parse_version("1.9.0")) == 1
        assert compare_versions(parse_version("1.2.3"), parse_version("2.0.0")) == -1

    def test_release_beats_prerelease(self) -> None:
        """A release is greater than any pre-release of the same numbers."""
        release = parse_version("1.2.3")
        for suffix in ("-rc1", "-zzz", "+build", "-alpine"):
            pre = parse_version(f"1.2.3{suffix}")
            assert compare_versions(release, pre) == 1
            assert compare_versions(pre, release) == -1

    def test_suffixes_compare_as_strings(self) -> None:
        """Two suffixes compare lexically."""
        assert compare_versions(parse_version("1.0.0-rc1"), parse_version("1.0.0-rc2")) == -1

    def test_equal_suffix_is_equal(self) -> None:
        """Equal numbers and suffixes compare equal regardless of prefix."""
        assert compare_versions(parse_version("v1.0.0"), parse_version("1.0.0")) == 0

    def test_reflexive(self) -> None:
        """Every version compares equal to itself."""
        for tag in SAMPLE_TAGS:
            version = parse_version(tag)
            assert compare_versions(version, version) == 0

    def test_antisymmetric_and_transitive(self) -> None:
        """The comparison is a consistent preorder."""
        versions = [parse_version(tag) for tag in SAMPLE_TAGS]
        for a, b in itertools.product(versions, repeat=2):
            assert compare_versions(a, b) == -compare_versions(b, a)
        for a, b, c in itertools.product(versions, repeat=3):
            if compare_versions(a, b) <= 0 and compare_versions(b, c) <= 0:
                assert compare_versions(a, c) <= 0

    def test_compare_numbers_ignores_suffix(self) -> None:
        """compare_numbers only looks at major.minor.patch."""
        assert compare_numbers(parse_version("1.2.3-rc1"), parse_version("1.2.3")) == 0


class TestSortVersions:
    """Tests for sort_versions function."""

    def test_descending_by_default(self) -> None:
        """Versions are sorted most recent first."""
        versions = [parse_version(t) for t in ["1.0.0", "1.2.0", "1.0.0-rc1", "1.1.0"]]
        result = sort_versions(versions)
        assert [v.original for v in result] == ["1.2.0", "1.1.0", "1.0.0", "1.0.0-rc1"]

    def test_ascending(self) -> None:
        """Ascending order puts the oldest first."""
        versions = [parse_version(t) for t in ["2.0.0", "1.0.0"]]
        assert [v.original for v in sort_versions(versions, descending=False)] == [
            "1.0.0",
            "2.0.0",
        ]

    def test_ignore_suffix_keeps_input_order_on_ties(self) -> None:
        """With suffixes ignored, ties keep their input order."""
        versions = [parse_version(t) for t in ["1.0.0-b", "1.0.0-a"]]
        result = sort_versions(versions, ignore_suffix=True)
        assert [v.original for v in result] == ["1.0.0-b", "1.0.0-a"]
