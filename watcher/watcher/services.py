"""Provider services.

Each service keeps the configured providers of one collaborator kind and
is the only place that talks to them. Provider errors are caught here,
logged with context and turned into empty results so that one failing
collaborator never aborts a decision cycle.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Generic, TypeVar

import structlog

from .chunker import split_message
from .images import parse_image
from .interfaces import (
    NotificationProvider,
    OrchestratorProvider,
    Provider,
    ProviderError,
    RegistryProvider,
    ReleaseProvider,
    SummarizerProvider,
    WorkloadNotFoundError,
)
from .models import ChatMessage, ChatRole, NotificationResult

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .models import ModelInfo, ReleaseInfo, Tag, Workload

logger = structlog.get_logger(__name__)

P = TypeVar("P", bound=Provider)

URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)
PLACEHOLDER_PATTERN = re.compile(r"\{(.*?)\}")


class ProviderRegistry(Generic[P]):
    """Registry of the configured providers of one kind.

    Providers whose configuration is incomplete are skipped at
    registration time.
    """

    kind = "provider"

    def __init__(self, providers: Iterable[P] = ()) -> None:
        """Initialize the registry and register the given providers.

        Args:
            providers: Candidate providers, in priority order.
        """
        self._providers: dict[str, P] = {}
        for provider in providers:
            self.register(provider)

        if not self._providers:
            logger.warning("no_providers_configured", kind=self.kind)
        else:
            logger.info("providers_active", kind=self.kind, providers=self.list_names())

    def register(self, provider: P) -> bool:
        """Register a provider if it is configured.

        Returns:
            True if the provider was registered.
        """
        if not provider.is_configured():
            logger.debug("provider_skipped", kind=self.kind, provider=provider.name)
            return False

        self._providers[provider.name] = provider
        logger.debug("provider_registered", kind=self.kind, provider=provider.name)
        return True

    def get(self, name: str | None = None) -> P | None:
        """Get a provider by name, or the first registered one."""
        if name is not None:
            return self._providers.get(name)
        return next(iter(self._providers.values()), None)

    def list_names(self) -> list[str]:
        return list(self._providers.keys())

    def __len__(self) -> int:
        return len(self._providers)


class RegistryService(ProviderRegistry[RegistryProvider]):
    """Lists image tags through the registry serving the image's host."""

    kind = "registry"

    def get_for_registry(self, registry: str) -> RegistryProvider | None:
        """Return the provider for a registry host.

        Unknown hosts fall back to the first registered provider.
        """
        for provider in self._providers.values():
            if provider.handles(registry):
                return provider
        return self.get()

    async def list_tags(self, image: str, limit: int = 100) -> list[Tag]:
        """List the tags of an image.

        Args:
            image: Full image reference.
            limit: Maximum number of tags.

        Returns:
            Tags, or an empty list on failure.
        """
        ref = parse_image(image)
        provider = self.get_for_registry(ref.registry)
        log = logger.bind(repository=ref.repository, registry=ref.registry)

        if provider is None:
            log.error("no_registry_provider")
            return []

        try:
            tags = await provider.list_tags(ref.repository, limit)
        except ProviderError as e:
            log.error("list_tags_failed", provider=provider.name, error=str(e), details=e.details)
            return []

        log.info("tags_listed", provider=provider.name, count=len(tags))
        return tags


def interpolate_url(template: str, values: dict[str, str]) -> str:
    """Replace ``{key}`` placeholders; unknown keys become empty strings.

    Examples:
        >>> interpolate_url("https://x/{repository}/{tag}", {"repository": "a/b", "tag": "v1"})
        'https://x/a/b/v1'
    """
    return PLACEHOLDER_PATTERN.sub(lambda m: str(values.get(m.group(1), "")), template)


class ReleaseService(ProviderRegistry[ReleaseProvider]):
    """Fetches release notes from the provider matching a release URL."""

    kind = "release"

    def __init__(
        self,
        providers: Iterable[ReleaseProvider] = (),
        default_provider: str = "github",
        fallback_provider: str = "url",
    ) -> None:
        self.default_provider = default_provider
        self.fallback_provider = fallback_provider
        super().__init__(providers)

    def get_for_target(self, target: str) -> ReleaseProvider | None:
        """Select the provider for a URL or a repository name."""
        if URL_PATTERN.match(target):
            for provider in self._providers.values():
                if provider.matches(target):
                    return provider
            return self._providers.get(self.fallback_provider)
        return self._providers.get(self.default_provider)

    async def get_release(
        self,
        repository: str,
        tag: str,
        url_template: str | None = None,
        context: dict[str, str] | None = None,
    ) -> ReleaseInfo | None:
        """Fetch the release notes of a tag.

        Args:
            repository: Repository path of the image.
            tag: Version tag.
            url_template: Release URL template of the workload.
            context: Extra placeholder values for the template.

        Returns:
            ReleaseInfo, or None if unavailable.
        """
        values = {**(context or {}), "repository": repository, "tag": tag}
        url = interpolate_url(url_template, values) if url_template else None
        provider = self.get_for_target(url or repository)
        log = logger.bind(repository=repository, tag=tag)

        if provider is None:
            log.debug("no_release_provider")
            return None

        try:
            release = await provider.get_release(repository, tag, url=url, context=values)
        except ProviderError as e:
            log.error("get_release_failed", provider=provider.name, error=str(e), details=e.details)
            return None

        if release is None:
            log.info("release_not_found", provider=provider.name)
        else:
            log.info("release_fetched", provider=provider.name)
        return release


class SummarizerService(ProviderRegistry[SummarizerProvider]):
    """Runs chat completions; silent when no backend is configured."""

    kind = "summarizer"

    async def chat(self, messages: list[ChatMessage], provider: str | None = None) -> str:
        """Run a conversation, returning an empty string on failure."""
        backend = self.get(provider)
        if backend is None:
            logger.debug("chat_skipped_no_provider")
            return ""

        try:
            result = await backend.chat(messages)
        except ProviderError as e:
            logger.error("chat_failed", provider=backend.name, error=str(e), details=e.details)
            return ""

        logger.info("chat_completed", provider=backend.name, messages=len(messages))
        return result

    async def ask(self, message: str, system_prompt: str, provider: str | None = None) -> str:
        """Send one user message under a system prompt."""
        return await self.chat(
            [
                ChatMessage(role=ChatRole.SYSTEM, content=system_prompt),
                ChatMessage(role=ChatRole.USER, content=message),
            ],
            provider=provider,
        )

    async def list_models(self, provider: str | None = None) -> list[ModelInfo]:
        backend = self.get(provider)
        if backend is None:
            return []

        try:
            return await backend.list_models()
        except ProviderError as e:
            logger.error("list_models_failed", provider=backend.name, error=str(e))
            return []


class NotificationService(ProviderRegistry[NotificationProvider]):
    """Broadcasts messages to every configured notification channel."""

    kind = "notification"

    async def broadcast(
        self,
        message: str | list[str],
        username: str | None = None,
    ) -> list[NotificationResult]:
        """Send a message to every channel, split to each channel's limit.

        Chunks are sent in order. A failing channel is recorded and does
        not prevent delivery on the others.

        Args:
            message: Text or lines of text.
            username: Display name used by channels that support one.

        Returns:
            One NotificationResult per channel.
        """
        results: list[NotificationResult] = []

        if not self._providers:
            logger.debug("broadcast_skipped_no_provider")
            return results

        for name, provider in self._providers.items():
            chunks = split_message(message, provider.max_length)
            try:
                for chunk in chunks:
                    await provider.send(chunk, username=username)
            except ProviderError as e:
                logger.error("broadcast_failed", provider=name, error=str(e), details=e.details)
                results.append(NotificationResult(provider=name, success=False, error=str(e)))
                continue

            logger.info("broadcast_sent", provider=name, chunks=len(chunks))
            results.append(NotificationResult(provider=name, success=True))

        return results


class OrchestratorService(ProviderRegistry[OrchestratorProvider]):
    """Reads and patches workloads through the active orchestrator."""

    kind = "orchestrator"

    def _require(self) -> OrchestratorProvider:
        provider = self.get()
        if provider is None:
            raise ProviderError("No orchestrator provider is available", provider=self.kind)
        return provider

    @staticmethod
    def _enrich(workload: Workload) -> Workload:
        if not workload.image:
            return workload
        ref = parse_image(workload.image)
        return workload.model_copy(update={"image_ref": ref})

    async def list_workloads(self) -> list[Workload]:
        """List workloads with parsed image references.

        Raises:
            ProviderError: If no orchestrator is configured.
        """
        provider = self._require()
        try:
            workloads = await provider.list_workloads()
        except ProviderError as e:
            logger.error(
                "list_workloads_failed", provider=provider.name, error=str(e), details=e.details
            )
            return []

        logger.info("workloads_listed", count=len(workloads))
        return [self._enrich(w) for w in workloads]

    async def get_workload(self, namespace: str, name: str) -> Workload | None:
        """Fetch one workload, or None if it is missing or unreadable."""
        provider = self._require()
        log = logger.bind(namespace=namespace, workload=name)
        try:
            workload = await provider.get_workload(namespace, name)
        except WorkloadNotFoundError:
            log.warning("workload_not_found")
            return None
        except ProviderError as e:
            log.error(
                "get_workload_failed", provider=provider.name, error=str(e), details=e.details
            )
            return None

        return self._enrich(workload)

    async def patch_workload(
        self,
        workload: Workload,
        annotations: dict[str, str | None],
        image: str | None = None,
    ) -> bool:
        """Patch a workload.

        Returns:
            True if the orchestrator accepted the patch.
        """
        provider = self._require()
        log = logger.bind(namespace=workload.namespace, workload=workload.name)
        try:
            await provider.patch_workload(workload, annotations, image=image)
        except ProviderError as e:
            log.error(
                "patch_workload_failed", provider=provider.name, error=str(e), details=e.details
            )
            return False

        log.info("workload_patched", image=image, keys=sorted(annotations))
        return True

    async def read_digest(self, workload: Workload) -> str | None:
        provider = self._require()
        try:
            return await provider.read_digest(workload)
        except ProviderError as e:
            logger.error(
                "read_digest_failed",
                namespace=workload.namespace,
                workload=workload.name,
                error=str(e),
            )
            return None


class Services:
    """The collaborator services injected into the engine."""

    def __init__(
        self,
        orchestrator: OrchestratorService,
        registry: RegistryService,
        releases: ReleaseService | None = None,
        summarizer: SummarizerService | None = None,
        notifications: NotificationService | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.registry = registry
        self.releases = releases or ReleaseService()
        self.summarizer = summarizer or SummarizerService()
        self.notifications = notifications or NotificationService()
