"""Update decision engine.

The engine runs one decision cycle over the watched workloads. For every
workload it resolves the running version, classifies the published tags,
and then skips, auto-upgrades or proposes the upgrade through a
confirmation link, depending on the workload's configuration and history.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from urllib.parse import quote, urlencode

import structlog

from .annotations import (
    AnnotationKey,
    effective_mode,
    has_watcher_annotation,
    parse_workload_config,
    serialize_changes,
)
from .classifier import VersionBuckets, classify, select_candidates
from .config import WatcherSettings
from .images import short_digest
from .models import CycleSummary, Decision, DecisionOutcome, UpdateMode
from .release_notes import ReleaseNotesBuilder, format_deploy_link
from .reminder import evaluate_reminder
from .version import is_version

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from .models import Tag, Workload, WorkloadConfig
    from .services import Services
    from .version import ParsedVersion

logger = structlog.get_logger(__name__)


@dataclass
class Evaluation:
    """Classification of one workload, without side effects."""

    workload: Workload
    config: WorkloadConfig
    mode: UpdateMode
    current_version: str | None = None
    buckets: VersionBuckets = field(default_factory=VersionBuckets)
    candidates: list[ParsedVersion] = field(default_factory=list)

    @property
    def next_version(self) -> str | None:
        return self.candidates[0].original if self.candidates else None


def _release_base(tag: str) -> str:
    return tag.split("-")[0]


def match_digest(tags: list[Tag], digest: str | None) -> str | None:
    """Find the tag published with a digest.

    Only version tags count, so a digest matched by ``latest`` alone
    leaves the version undetermined. With several version tags a plain
    release (``1.2.3`` rather than ``1.2.3-alpine``) is preferred, keeping
    registry order otherwise.

    Args:
        tags: Tags listed by the registry.
        digest: Digest of the running image.

    Returns:
        The matching tag name, or None.
    """
    wanted = short_digest(digest)
    if not wanted:
        return None

    matches = [t.name for t in tags if short_digest(t.digest) == wanted]
    versions = [name for name in matches if is_version(name)]
    if not versions:
        return None
    if len(versions) == 1:
        return versions[0]

    releases = [name for name in versions if name == _release_base(name)]
    return (releases or versions)[0]


class UpdateEngine:
    """Runs decision cycles over watched workloads.

    The engine is responsible for:
    - Resolving the current version of each workload
    - Selecting the next version allowed by the workload's strategy
    - Auto-upgrading, or notifying with a confirmation link
    - Isolating failures so one workload never aborts a cycle
    """

    def __init__(
        self,
        services: Services,
        settings: WatcherSettings | None = None,
        clock: Callable[[], datetime] | None = None,
        token_factory: Callable[[], str] | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            services: Collaborator services.
            settings: Process settings. Uses defaults if not provided.
            clock: Returns the current time. Defaults to UTC now.
            token_factory: Generates confirmation tokens. Defaults to uuid4.
        """
        self.services = services
        self.settings = settings or WatcherSettings()
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._token_factory = token_factory or (lambda: str(uuid.uuid4()))
        self.notes = ReleaseNotesBuilder(services.releases, services.summarizer)
        self._log = logger.bind(component="engine")

    def is_watched(self, workload: Workload) -> bool:
        return self.settings.watch_all or has_watcher_annotation(workload.annotations)

    async def run_cycle(self) -> CycleSummary:
        """Process every watched workload once, sequentially.

        Returns:
            CycleSummary with one decision per watched workload.
        """
        summary = CycleSummary(run_id=str(uuid.uuid4())[:8], started_at=self._clock())
        self._log.info("cycle_started", run_id=summary.run_id)

        workloads = await self.services.orchestrator.list_workloads()
        watched = [w for w in workloads if self.is_watched(w)]

        for workload in watched:
            summary.decisions.append(await self.process_workload(workload))

        summary.finished_at = self._clock()
        self._log.info(
            "cycle_completed",
            run_id=summary.run_id,
            workloads=len(workloads),
            watched=len(watched),
            upgraded=summary.count(DecisionOutcome.AUTO_UPGRADE),
            notified=summary.count(DecisionOutcome.NOTIFY_PENDING),
            failed=summary.failed,
        )
        return summary

    async def process_workload(self, workload: Workload) -> Decision:
        """Run the decision state machine for one workload.

        Errors are logged and recorded on the returned decision instead of
        being raised.
        """
        log = self._log.bind(namespace=workload.namespace, workload=workload.name)
        try:
            return await self._process(workload, log)
        except Exception as e:
            log.exception("workload_processing_failed")
            return Decision(
                namespace=workload.namespace,
                name=workload.name,
                outcome=DecisionOutcome.NO_UPDATE,
                error=str(e),
            )

    async def evaluate(self, workload: Workload) -> Evaluation:
        """Classify the published versions of a workload.

        Performs no patch and sends no notification.
        """
        config = parse_workload_config(workload.annotations, self.settings)
        evaluation = Evaluation(
            workload=workload,
            config=config,
            mode=effective_mode(config.mode, self.settings),
        )
        if not workload.image or workload.image_ref is None:
            return evaluation

        tags = await self.services.registry.list_tags(workload.image, self.settings.tag_limit)
        evaluation.current_version = await self.resolve_current_version(workload, config, tags)
        evaluation.buckets = classify(evaluation.current_version, [t.name for t in tags])
        evaluation.candidates = select_candidates(evaluation.buckets, config.strategy)
        return evaluation

    async def _process(self, workload: Workload, log: FilteringBoundLogger) -> Decision:
        config = parse_workload_config(workload.annotations, self.settings)
        mode = effective_mode(config.mode, self.settings)
        decision = Decision(
            namespace=workload.namespace,
            name=workload.name,
            outcome=DecisionOutcome.SKIP,
        )

        log.info("workload_processing", mode=mode.value, strategy=config.strategy.value)

        if mode == UpdateMode.DISABLED or not config.watch_enabled:
            log.info("workload_skipped", reason="disabled")
            return decision

        evaluation = await self.evaluate(workload)
        decision.current_version = evaluation.current_version
        decision.outcome = DecisionOutcome.NO_UPDATE

        if evaluation.current_version is None:
            log.warning("current_version_undetermined", image=workload.image)
            return decision

        candidates = evaluation.candidates
        decision.candidates = [v.original for v in candidates]
        if not candidates:
            log.info("no_new_version", current=evaluation.current_version)
            return decision

        next_version = candidates[0].original
        decision.next_version = next_version
        log.info("new_versions_detected", count=len(candidates), versions=decision.candidates)

        if mode == UpdateMode.AUTO_UPDATE:
            return await self._auto_upgrade(workload, config, evaluation, decision, log)
        return await self._notify(workload, config, evaluation, decision, log)

    async def _auto_upgrade(
        self,
        workload: Workload,
        config: WorkloadConfig,
        evaluation: Evaluation,
        decision: Decision,
        log: FilteringBoundLogger,
    ) -> Decision:
        next_version = decision.next_version or ""
        log.info("auto_upgrade_started", current=evaluation.current_version, next=next_version)

        notes = await self._release_notes(workload, config, decision.candidates)
        if notes:
            await self.services.notifications.broadcast(
                notes, username=self._username(workload, next_version)
            )

        decision.outcome = DecisionOutcome.AUTO_UPGRADE
        decision.upgraded = await self.upgrade(workload, next_version, evaluation.current_version)
        return decision

    async def _notify(
        self,
        workload: Workload,
        config: WorkloadConfig,
        evaluation: Evaluation,
        decision: Decision,
        log: FilteringBoundLogger,
    ) -> Decision:
        reminder = evaluate_reminder(
            config.last_notified_at,
            config.last_notified_version,
            evaluation.candidates,
            reminder_delay_days=self.settings.reminder_delay_days,
            now=self._clock(),
        )
        if not reminder.should_notify:
            log.debug("notification_not_due", last_notified=config.last_notified_version)
            return decision

        next_version = decision.next_version or ""
        token = self._token_factory()
        changes = {
            AnnotationKey.LAST_NOTIFIED: self._clock(),
            AnnotationKey.LAST_NOTIFIED_VERSION: next_version,
            AnnotationKey.CURRENT_VERSION: evaluation.current_version,
            AnnotationKey.TOKEN_UPDATE: token,
        }
        decision.outcome = DecisionOutcome.NOTIFY_PENDING
        decision.token = token

        # The token must be stored before anyone can click the link
        patched = await self.services.orchestrator.patch_workload(
            workload, serialize_changes(changes, self.settings.timezone)
        )
        if not patched:
            log.error("pending_confirmation_not_recorded", next=next_version)
            decision.error = "Failed to record the pending confirmation"
            return decision

        versions = reminder.new_versions or evaluation.candidates
        notes = await self._release_notes(workload, config, [v.original for v in versions])
        url = self.confirmation_url(workload, token, next_version)
        link = format_deploy_link(next_version, url)
        await self.services.notifications.broadcast(
            [*notes, link], username=self._username(workload, next_version)
        )
        log.info(
            "upgrade_proposed",
            next=next_version,
            new_versions=len(reminder.new_versions),
            reminder=reminder.should_remind,
        )
        return decision

    async def _release_notes(
        self,
        workload: Workload,
        config: WorkloadConfig,
        tags: list[str],
    ) -> list[str]:
        ref = workload.image_ref
        if ref is None:
            return []
        context = {
            "registry": ref.registry,
            "namespace": workload.namespace,
            "name": workload.name,
        }
        return await self.notes.build(
            ref.repository, tags, url_template=config.release_url_template, context=context
        )

    async def resolve_current_version(
        self,
        workload: Workload,
        config: WorkloadConfig,
        tags: list[Tag],
    ) -> str | None:
        """Determine the version a workload runs.

        The image tag is used when it is a version, then the recorded
        current version, then the registry tag carrying the running digest.

        Returns:
            The current version, or None if it cannot be determined.
        """
        ref = workload.image_ref
        if ref is not None and is_version(ref.tag):
            return ref.tag
        if config.current_version:
            return config.current_version

        digest = workload.digest
        if not digest:
            digest = await self.services.orchestrator.read_digest(workload)
        return match_digest(tags, digest)

    async def find_workload(
        self, namespace: str, name: str
    ) -> tuple[Workload, WorkloadConfig] | None:
        """Fetch a workload and its configuration, or None if missing."""
        workload = await self.services.orchestrator.get_workload(namespace, name)
        if workload is None:
            return None
        return workload, parse_workload_config(workload.annotations, self.settings)

    async def upgrade(
        self,
        workload: Workload,
        next_version: str,
        current_version: str | None = None,
    ) -> bool:
        """Point a workload at a new version and announce the result.

        Args:
            workload: Workload to upgrade.
            next_version: Tag to deploy.
            current_version: Version being replaced. Defaults to the image tag.

        Returns:
            True if the orchestrator accepted the patch.
        """
        ref = workload.image_ref
        if ref is None:
            raise ValueError(f"Workload {workload.qualified_name} has no image")

        previous = current_version or ref.tag
        changes = {
            AnnotationKey.LAST_UPDATED: self._clock(),
            AnnotationKey.LAST_UPDATED_VERSION: next_version,
            AnnotationKey.PREVIOUS_VERSION: previous,
            AnnotationKey.CURRENT_VERSION: next_version,
            AnnotationKey.TOKEN_UPDATE: None,
        }
        success = await self.services.orchestrator.patch_workload(
            workload,
            serialize_changes(changes, self.settings.timezone),
            image=ref.reference(next_version),
        )

        log = self._log.bind(namespace=workload.namespace, workload=workload.name)
        if success:
            log.info("upgrade_completed", previous=previous, next=next_version)
            message = (
                f"Upgrade of {workload.qualified_name} from {previous} to {next_version} completed."
            )
        else:
            log.error("upgrade_failed", previous=previous, next=next_version)
            message = (
                f"Upgrade of {workload.qualified_name} from {previous} to {next_version} failed."
            )

        await self.services.notifications.broadcast(
            message, username=self._username(workload, next_version)
        )
        return success

    def confirmation_url(self, workload: Workload, token: str, version: str) -> str:
        """Build the link that confirms a pending upgrade."""
        path = f"/api/upgrade/{quote(workload.namespace, safe='')}/{quote(workload.name, safe='')}"
        query = urlencode({"token": token, "version": version})
        return f"{self.settings.public_url}{path}?{query}"

    @staticmethod
    def _username(workload: Workload, version: str) -> str:
        repository = workload.image_ref.repository if workload.image_ref else workload.name
        return f"{repository}:{version}"
