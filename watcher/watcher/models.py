"""Core data models for image-watcher.

This module defines Pydantic models for workloads, their watcher
configuration, registry tags, releases and decision results.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - needed at runtime by Pydantic
from enum import Enum

from pydantic import BaseModel, Field


class UpdateMode(str, Enum):
    """How a workload reacts to a newer version."""

    AUTO_UPDATE = "AUTO_UPDATE"
    NOTIFICATION = "NOTIFICATION"
    DISABLED = "DISABLED"
    DEFAULT = "DEFAULT"


class UpdateStrategy(str, Enum):
    """Breadth of the updates a workload accepts."""

    ALL = "ALL"
    MAJOR = "MAJOR"
    MINOR = "MINOR"
    PATCH = "PATCH"


class WorkloadKind(str, Enum):
    """Kind of orchestrated resource."""

    DEPLOYMENT = "Deployment"
    STATEFUL_SET = "StatefulSet"


class DecisionOutcome(str, Enum):
    """Outcome of one decision cycle for one workload."""

    SKIP = "skip"
    NO_UPDATE = "no_update"
    AUTO_UPGRADE = "auto_upgrade"
    NOTIFY_PENDING = "notify_pending"


class ImageReference(BaseModel):
    """A container image reference split into its parts."""

    registry: str = Field(default="docker.io", description="Registry host")
    repository: str = Field(..., description="Repository path inside the registry")
    tag: str = Field(default="latest", description="Image tag")
    digest: str | None = Field(default=None, description="Content digest, if pinned")

    def reference(self, tag: str) -> str:
        """Return the full image reference pointing at another tag."""
        return f"{self.registry}/{self.repository}:{tag}"


class Tag(BaseModel):
    """A tag listed by a registry."""

    name: str = Field(..., description="Tag name")
    digest: str | None = Field(default=None, description="Content digest of the tag")


class Workload(BaseModel):
    """A workload as reported by the orchestrator."""

    name: str = Field(..., description="Workload name")
    namespace: str = Field(..., description="Namespace of the workload")
    kind: WorkloadKind = Field(default=WorkloadKind.DEPLOYMENT, description="Resource kind")
    image: str | None = Field(default=None, description="Image of the first container")
    annotations: dict[str, str] = Field(default_factory=dict, description="Raw annotations")
    replicas: int = Field(default=0, description="Desired replicas")
    ready_replicas: int = Field(default=0, description="Ready replicas")
    created_at: datetime | None = Field(default=None, description="Creation timestamp")
    image_ref: ImageReference | None = Field(default=None, description="Parsed image")
    running_digest: str | None = Field(
        default=None, description="Digest of the image actually running in a pod"
    )

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def digest(self) -> str | None:
        """Digest pinned in the image reference, else the running one."""
        if self.image_ref is not None and self.image_ref.digest:
            return self.image_ref.digest
        return self.running_digest


class WorkloadConfig(BaseModel):
    """Typed watcher configuration and history of one workload."""

    mode: UpdateMode = Field(default=UpdateMode.AUTO_UPDATE, description="Update mode")
    strategy: UpdateStrategy = Field(default=UpdateStrategy.ALL, description="Update strategy")
    watch_enabled: bool = Field(default=True, description="Whether the workload is watched")
    current_version: str | None = Field(default=None, description="Current version")
    previous_version: str | None = Field(default=None, description="Version before last upgrade")
    last_updated_at: datetime | None = Field(default=None, description="Last upgrade time")
    last_updated_version: str | None = Field(default=None, description="Last upgraded version")
    last_notified_at: datetime | None = Field(default=None, description="Last notification time")
    last_notified_version: str | None = Field(default=None, description="Last notified version")
    pending_upgrade_token: str | None = Field(default=None, description="Confirmation token")
    release_url_template: str | None = Field(default=None, description="Release notes URL")


class ReleaseInfo(BaseModel):
    """Release notes of one version."""

    provider: str = Field(..., description="Provider that produced the release")
    name: str = Field(..., description="Repository name")
    version: str = Field(..., description="Released version tag")
    url: str = Field(default="", description="Human readable release page")
    author: str = Field(default="unknown", description="Release author")
    published_at: datetime | None = Field(default=None, description="Publication time")
    changelog: str = Field(default="", description="Raw changelog text")


class NotificationResult(BaseModel):
    """Result of a broadcast on one channel."""

    provider: str = Field(..., description="Notification channel name")
    success: bool = Field(..., description="Whether every chunk was delivered")
    error: str | None = Field(default=None, description="Error message if failed")


class Decision(BaseModel):
    """Result of the decision engine for one workload."""

    namespace: str = Field(..., description="Namespace of the workload")
    name: str = Field(..., description="Workload name")
    outcome: DecisionOutcome = Field(..., description="Decision outcome")
    current_version: str | None = Field(default=None, description="Resolved current version")
    next_version: str | None = Field(default=None, description="Selected next version")
    candidates: list[str] = Field(default_factory=list, description="Candidate versions")
    token: str | None = Field(default=None, description="Generated confirmation token")
    upgraded: bool | None = Field(default=None, description="Outcome of the upgrade patch")
    error: str | None = Field(default=None, description="Error raised while processing")


class CycleSummary(BaseModel):
    """Summary of a complete decision cycle."""

    run_id: str = Field(..., description="Unique cycle identifier")
    started_at: datetime = Field(..., description="Cycle start time")
    finished_at: datetime | None = Field(default=None, description="Cycle end time")
    decisions: list[Decision] = Field(default_factory=list)

    def count(self, outcome: DecisionOutcome) -> int:
        """Number of workloads that ended with an outcome."""
        return sum(1 for d in self.decisions if d.outcome == outcome)

    @property
    def failed(self) -> int:
        """Number of workloads whose processing raised an error."""
        return sum(1 for d in self.decisions if d.error is not None)


class ChatRole(str, Enum):
    """Author of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """A message sent to a chat completion model."""

    role: ChatRole = Field(..., description="Message author")
    content: str = Field(..., description="Message text")


class ModelInfo(BaseModel):
    """A model offered by a summarizer backend."""

    id: str = Field(..., description="Model identifier")
    owned_by: str | None = Field(default=None, description="Model owner")
    created: int | None = Field(default=None, description="Creation timestamp")
