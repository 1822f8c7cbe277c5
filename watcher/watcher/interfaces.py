"""Collaborator interfaces for image-watcher.

This module defines abstract base classes for the providers the decision
engine talks to (registries, release sources, summarizers, notification
channels and orchestrators) and the error hierarchy they raise.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import ChatMessage, ModelInfo, ReleaseInfo, Tag, Workload


class ProviderError(Exception):
    """Error raised by a provider.

    Attributes:
        provider: Name of the provider that raised the error.
        details: Additional context, such as an HTTP status or a URL.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.details = details or {}


class ConfigurationError(ProviderError):
    """Provider is missing required configuration."""


class UnavailableError(ProviderError):
    """Provider could not be reached or returned an unexpected answer."""


class WorkloadNotFoundError(UnavailableError):
    """The requested workload does not exist."""


class Provider(ABC):
    """Base class shared by every provider."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the unique provider name."""
        ...

    @abstractmethod
    def is_configured(self) -> bool:
        """Check whether the minimal configuration (tokens, URLs) is present."""
        ...

    async def is_available(self) -> bool:
        """Check whether the provider is reachable.

        Default implementation reports a configured provider as available.
        """
        return self.is_configured()


class RegistryProvider(Provider):
    """Lists the tags published for a repository."""

    @abstractmethod
    def handles(self, registry: str) -> bool:
        """Return True if this provider serves a registry host."""
        ...

    @abstractmethod
    async def list_tags(self, repository: str, limit: int = 100) -> list[Tag]:
        """List tags of a repository.

        Args:
            repository: Repository path inside the registry.
            limit: Maximum number of tags to return.

        Returns:
            Tags, most recently pushed first when the registry reports it.

        Raises:
            ProviderError: If the registry cannot be queried.
        """
        ...


class ReleaseProvider(Provider):
    """Fetches the release notes of a version."""

    @abstractmethod
    def matches(self, url: str | None) -> bool:
        """Return True if this provider can serve a release URL."""
        ...

    @abstractmethod
    async def get_release(
        self,
        repository: str,
        tag: str,
        url: str | None = None,
        context: dict[str, str] | None = None,
    ) -> ReleaseInfo | None:
        """Fetch release notes.

        Args:
            repository: Repository path of the image.
            tag: Version tag.
            url: Release URL template of the workload.
            context: Values interpolated into the URL template.

        Returns:
            ReleaseInfo, or None if there is no release for the tag.
        """
        ...


class SummarizerProvider(Provider):
    """Chat completion backend used to summarize changelogs."""

    @abstractmethod
    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.3,
        max_tokens: int | None = None,
    ) -> str:
        """Run a chat completion and return the answer text."""
        ...

    async def list_models(self) -> list[ModelInfo]:
        """List the models the backend offers."""
        return []


class NotificationProvider(Provider):
    """Delivers messages to a notification channel."""

    @property
    @abstractmethod
    def max_length(self) -> int:
        """Maximum message length, or ``UNBOUNDED``."""
        ...

    @abstractmethod
    async def send(self, message: str, username: str | None = None) -> None:
        """Send one message.

        Raises:
            ProviderError: If the message could not be delivered.
        """
        ...


class OrchestratorProvider(Provider):
    """Reads and patches workloads."""

    @abstractmethod
    async def list_workloads(self) -> list[Workload]:
        """List every Deployment and StatefulSet the watcher can see."""
        ...

    @abstractmethod
    async def get_workload(self, namespace: str, name: str) -> Workload:
        """Fetch one workload.

        Raises:
            WorkloadNotFoundError: If the workload does not exist.
        """
        ...

    @abstractmethod
    async def patch_workload(
        self,
        workload: Workload,
        annotations: dict[str, str | None],
        image: str | None = None,
    ) -> Workload:
        """Write annotations and optionally replace the container image.

        A ``None`` annotation value removes the annotation.
        """
        ...

    @abstractmethod
    async def read_digest(self, workload: Workload) -> str | None:
        """Return the digest of the image running in the workload's pods."""
        ...
