"""Parsing of container image references."""

from __future__ import annotations

from .models import ImageReference

DEFAULT_REGISTRY = "docker.io"
DEFAULT_TAG = "latest"


def parse_image(image: str) -> ImageReference:
    """Split an image reference into registry, repository, tag and digest.

    The first path segment is a registry host only when it contains a dot
    or a colon, so ``nginx`` and ``library/nginx`` both resolve to Docker
    Hub while ``ghcr.io/org/app`` and ``localhost:5000/app`` keep their host.

    Args:
        image: Image reference such as ``ghcr.io/org/app:1.2.3@sha256:abc``.

    Returns:
        ImageReference with defaults applied.

    Examples:
        >>> parse_image("nginx:1.25.0").repository
        'nginx'
        >>> parse_image("ghcr.io/org/app").registry
        'ghcr.io'
    """
    digest = None
    if "@" in image:
        image, digest = image.split("@", 1)

    registry = DEFAULT_REGISTRY
    name = image

    segments = name.split("/")
    if len(segments) > 1 and ("." in segments[0] or ":" in segments[0]):
        registry = segments[0]
        name = "/".join(segments[1:])

    tag = DEFAULT_TAG
    if ":" in name:
        name, _, tag = name.rpartition(":")
        tag = tag or DEFAULT_TAG

    return ImageReference(registry=registry, repository=name, tag=tag, digest=digest)


def short_digest(digest: str | None) -> str | None:
    """Return the hex part of a ``sha256:`` digest."""
    if not digest:
        return None
    return digest.split(":", 1)[1] if ":" in digest else digest
