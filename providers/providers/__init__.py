"""Image-Watcher Providers.

Concrete collaborators of the watcher core: container registries, release
sources, the summarizer, notification channels and the Kubernetes
orchestrator. :func:`build_services` wires the configured ones together.
"""

from __future__ import annotations

from importlib.metadata import version as get_package_version
from typing import TYPE_CHECKING

from providers.http import HttpProvider
from providers.kubernetes import KubernetesOrchestrator, build_patch, escape_pointer
from providers.notifiers import DiscordNotifier, TelegramNotifier
from providers.registries import DockerHubRegistry, GhcrRegistry
from providers.releases import GitHubReleaseProvider, UrlReleaseProvider
from providers.summarizer import OpenAISummarizer
from watcher.services import (
    NotificationService,
    OrchestratorService,
    RegistryService,
    ReleaseService,
    Services,
    SummarizerService,
)

if TYPE_CHECKING:
    import aiohttp

    from watcher.config import WatcherSettings

__version__ = get_package_version("image-watcher")


def build_services(
    settings: WatcherSettings, session: aiohttp.ClientSession | None = None
) -> Services:
    """Build the services of every provider the settings configure.

    Args:
        settings: Watcher settings.
        session: Optional HTTP session shared by every provider.

    Returns:
        Services ready to inject into the engine.
    """
    orchestrator = KubernetesOrchestrator(
        api_url=settings.kube_api_url,
        token=settings.kube_token,
        ca_file=settings.kube_ca_file,
        verify_ssl=settings.kube_verify_ssl,
        session=session,
    )
    return Services(
        orchestrator=OrchestratorService([orchestrator]),
        registry=RegistryService(
            [
                DockerHubRegistry(session=session),
                GhcrRegistry(token=settings.github_token, session=session),
            ]
        ),
        releases=ReleaseService(
            [
                GitHubReleaseProvider(token=settings.github_token, session=session),
                UrlReleaseProvider(session=session),
            ]
        ),
        summarizer=SummarizerService(
            [
                OpenAISummarizer(
                    api_key=settings.openai_api_key,
                    base_url=settings.openai_base_url,
                    model=settings.openai_model,
                    session=session,
                )
            ]
        ),
        notifications=NotificationService(
            [
                DiscordNotifier(webhook_url=settings.discord_url, session=session),
                TelegramNotifier(
                    bot_token=settings.telegram_bot_token,
                    chat_id=settings.telegram_chat_id,
                    session=session,
                ),
            ]
        ),
    )


__all__ = [
    "DiscordNotifier",
    "DockerHubRegistry",
    "GhcrRegistry",
    "GitHubReleaseProvider",
    "HttpProvider",
    "KubernetesOrchestrator",
    "OpenAISummarizer",
    "TelegramNotifier",
    "UrlReleaseProvider",
    "__version__",
    "build_patch",
    "build_services",
    "escape_pointer",
]
