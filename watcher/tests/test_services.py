"""Tests for provider services."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from watcher.chunker import UNBOUNDED
from watcher.interfaces import ProviderError, UnavailableError, WorkloadNotFoundError
from watcher.models import ReleaseInfo, Tag, Workload
from watcher.services import (
    NotificationService,
    OrchestratorService,
    RegistryService,
    ReleaseService,
    SummarizerService,
    interpolate_url,
)


def provider(name: str, configured: bool = True, **attributes) -> MagicMock:
    mock = MagicMock()
    mock.name = name
    mock.is_configured.return_value = configured
    for key, value in attributes.items():
        setattr(mock, key, value)
    return mock


class TestProviderRegistry:
    """Tests for provider registration."""

    def test_unconfigured_providers_are_skipped(self) -> None:
        """Only configured providers are registered."""
        service = NotificationService([provider("discord"), provider("telegram", False)])
        assert service.list_names() == ["discord"]
        assert len(service) == 1

    def test_get_defaults_to_first(self) -> None:
        """Without a name the first provider is returned."""
        first, second = provider("a"), provider("b")
        service = SummarizerService([first, second])
        assert service.get() is first
        assert service.get("b") is second
        assert service.get("missing") is None


class TestRegistryService:
    """Tests for RegistryService."""

    @pytest.mark.asyncio
    async def test_routes_by_registry_host(self) -> None:
        """The provider handling the image's host lists the tags."""
        hub = provider("docker-hub", handles=lambda host: host == "docker.io")
        ghcr = provider("ghcr", handles=lambda host: host == "ghcr.io")
        ghcr.list_tags = AsyncMock(return_value=[Tag(name="v1.0.0")])
        service = RegistryService([hub, ghcr])

        tags = await service.list_tags("ghcr.io/org/app:v0.9.0", limit=10)

        assert [t.name for t in tags] == ["v1.0.0"]
        ghcr.list_tags.assert_awaited_once_with("org/app", 10)

    def test_unknown_host_falls_back_to_first(self) -> None:
        """Unknown registries use the first provider."""
        hub = provider("docker-hub", handles=lambda host: False)
        service = RegistryService([hub])
        assert service.get_for_registry("quay.io") is hub

    @pytest.mark.asyncio
    async def test_errors_give_empty_list(self) -> None:
        """Provider errors are logged and give no tags."""
        hub = provider("docker-hub", handles=lambda host: True)
        hub.list_tags = AsyncMock(side_effect=UnavailableError("down", provider="docker-hub"))
        service = RegistryService([hub])

        assert await service.list_tags("nginx:1.0.0") == []


class TestReleaseService:
    """Tests for ReleaseService."""

    def test_interpolate_url(self) -> None:
        """Placeholders are replaced and unknown keys emptied."""
        url = interpolate_url(
            "https://x/{repository}/{tag}/{unknown}", {"repository": "a/b", "tag": "v1"}
        )
        assert url == "https://x/a/b/v1/"

    @pytest.mark.asyncio
    async def test_default_provider_without_template(self) -> None:
        """Without a template the default provider is used."""
        github = provider("github", matches=lambda url: False)
        github.get_release = AsyncMock(
            return_value=ReleaseInfo(provider="github", name="org/app", version="v1")
        )
        service = ReleaseService([github])

        release = await service.get_release("org/app", "v1")

        assert release is not None
        github.get_release.assert_awaited_once()
        assert github.get_release.await_args.kwargs["url"] is None

    @pytest.mark.asyncio
    async def test_template_routes_to_matching_provider(self) -> None:
        """An interpolated URL goes to the matching provider, else the fallback."""
        github = provider("github", matches=lambda url: "api.github.com" in url)
        github.get_release = AsyncMock(return_value=None)
        url_provider = provider("url", matches=lambda url: True)
        url_provider.get_release = AsyncMock(return_value=None)
        service = ReleaseService([github, url_provider])

        await service.get_release(
            "org/app",
            "1.0.0",
            url_template="https://example.com/{namespace}/{tag}",
            context={"namespace": "apps"},
        )

        github.get_release.assert_not_awaited()
        url = url_provider.get_release.await_args.kwargs["url"]
        assert url == "https://example.com/apps/1.0.0"

    @pytest.mark.asyncio
    async def test_errors_give_none(self) -> None:
        """Provider errors give no release."""
        github = provider("github")
        github.get_release = AsyncMock(side_effect=ProviderError("boom"))
        service = ReleaseService([github])

        assert await service.get_release("org/app", "v1") is None


class TestSummarizerService:
    """Tests for SummarizerService."""

    @pytest.mark.asyncio
    async def test_no_provider_gives_empty_string(self) -> None:
        """Without a summarizer the answer is empty."""
        assert await SummarizerService().ask("text", "prompt") == ""

    @pytest.mark.asyncio
    async def test_ask_sends_system_and_user(self) -> None:
        """Ask sends the system prompt before the message."""
        backend = provider("openai")
        backend.chat = AsyncMock(return_value="summary")
        service = SummarizerService([backend])

        assert await service.ask("changelog", "be brief") == "summary"
        messages = backend.chat.await_args.args[0]
        assert [m.role.value for m in messages] == ["system", "user"]
        assert messages[1].content == "changelog"

    @pytest.mark.asyncio
    async def test_errors_give_empty_string(self) -> None:
        """Errors give an empty answer."""
        backend = provider("openai")
        backend.chat = AsyncMock(side_effect=UnavailableError("quota"))
        assert await SummarizerService([backend]).ask("x", "y") == ""


class TestNotificationService:
    """Tests for NotificationService."""

    @pytest.mark.asyncio
    async def test_broadcast_splits_per_channel(self) -> None:
        """Each channel receives chunks fitting its own limit, in order."""
        short = provider("short", max_length=11)
        short.send = AsyncMock()
        unbounded = provider("unbounded", max_length=UNBOUNDED)
        unbounded.send = AsyncMock()
        service = NotificationService([short, unbounded])

        results = await service.broadcast("first line\nsecond line", username="org/app:1.0.0")

        assert [r.success for r in results] == [True, True]
        assert [c.args[0] for c in short.send.await_args_list] == ["first line", "second line"]
        unbounded.send.assert_awaited_once_with(
            "first line\nsecond line", username="org/app:1.0.0"
        )

    @pytest.mark.asyncio
    async def test_failing_channel_does_not_stop_others(self) -> None:
        """A failing channel is reported and the others still receive the message."""
        broken = provider("broken", max_length=UNBOUNDED)
        broken.send = AsyncMock(side_effect=UnavailableError("down"))
        working = provider("working", max_length=UNBOUNDED)
        working.send = AsyncMock()
        service = NotificationService([broken, working])

        results = await service.broadcast("hello")

        assert [(r.provider, r.success) for r in results] == [
            ("broken", False),
            ("working", True),
        ]
        assert results[0].error == "down"
        working.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_channels(self) -> None:
        """Broadcasting without channels is a no-op."""
        assert await NotificationService().broadcast("hello") == []


class TestOrchestratorService:
    """Tests for OrchestratorService."""

    @pytest.mark.asyncio
    async def test_requires_provider(self) -> None:
        """Without an orchestrator, calls raise ProviderError."""
        with pytest.raises(ProviderError):
            await OrchestratorService().list_workloads()

    @pytest.mark.asyncio
    async def test_list_workloads_parses_images(self) -> None:
        """Listed workloads carry a parsed image reference."""
        kube = provider("kubernetes")
        kube.list_workloads = AsyncMock(
            return_value=[
                Workload(name="web", namespace="apps", image="ghcr.io/org/web:1.0.0"),
                Workload(name="bare", namespace="apps"),
            ]
        )
        service = OrchestratorService([kube])

        workloads = await service.list_workloads()

        assert workloads[0].image_ref is not None
        assert workloads[0].image_ref.registry == "ghcr.io"
        assert workloads[1].image_ref is None

    @pytest.mark.asyncio
    async def test_get_workload_not_found(self) -> None:
        """Missing workloads give None."""
        kube = provider("kubernetes")
        kube.get_workload = AsyncMock(side_effect=WorkloadNotFoundError("missing"))
        assert await OrchestratorService([kube]).get_workload("apps", "web") is None

    @pytest.mark.asyncio
    async def test_patch_workload_reports_failure(self) -> None:
        """A rejected patch gives False."""
        kube = provider("kubernetes")
        kube.patch_workload = AsyncMock(side_effect=UnavailableError("conflict"))
        service = OrchestratorService([kube])

        patched = await service.patch_workload(
            Workload(name="web", namespace="apps"), {"image-watcher/token-update": "t"}
        )

        assert patched is False

    @pytest.mark.asyncio
    async def test_read_digest_failure_gives_none(self) -> None:
        """A failing pods lookup means no digest rather than an error."""
        kube = provider("kubernetes")
        kube.read_digest = AsyncMock(side_effect=UnavailableError("pods is forbidden"))
        service = OrchestratorService([kube])

        assert await service.read_digest(Workload(name="web", namespace="apps")) is None
