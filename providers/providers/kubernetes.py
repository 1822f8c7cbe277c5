"""Kubernetes orchestrator talking to the API server over REST.

Uses the pod's service account unless an API URL and token are configured.
"""

from __future__ import annotations

import os
import ssl
from datetime import datetime
from pathlib import Path
from typing import Any

import aiohttp
import structlog

from watcher.interfaces import OrchestratorProvider, UnavailableError, WorkloadNotFoundError
from watcher.models import Workload, WorkloadKind

from .http import HttpProvider, is_status

logger = structlog.get_logger(__name__)

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")

# API path segment of each workload kind
RESOURCE_PATHS: dict[WorkloadKind, str] = {
    WorkloadKind.DEPLOYMENT: "deployments",
    WorkloadKind.STATEFUL_SET: "statefulsets",
}

JSON_PATCH = "application/json-patch+json"


def escape_pointer(key: str) -> str:
    """Escape an annotation key for use in a JSON pointer."""
    return key.replace("~", "~0").replace("/", "~1")


def build_patch(
    workload: Workload, annotations: dict[str, str | None], image: str | None = None
) -> list[dict[str, Any]]:
    """Build the JSON patch writing annotations and an optional image.

    Keys set to None are removed when present on the workload and ignored
    otherwise, since removing a missing path fails the whole patch.
    """
    operations: list[dict[str, Any]] = []
    if not workload.annotations:
        operations.append({"op": "add", "path": "/metadata/annotations", "value": {}})

    for key, value in annotations.items():
        path = f"/metadata/annotations/{escape_pointer(key)}"
        if value is None:
            if key in workload.annotations:
                operations.append({"op": "remove", "path": path})
        else:
            operations.append({"op": "add", "path": path, "value": value})

    if image:
        operations.append(
            {"op": "replace", "path": "/spec/template/spec/containers/0/image", "value": image}
        )
    return operations


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class KubernetesOrchestrator(OrchestratorProvider, HttpProvider):
    """Reads and patches Deployments and StatefulSets."""

    name = "kubernetes"

    def __init__(
        self,
        api_url: str | None = None,
        token: str | None = None,
        ca_file: Path | None = None,
        verify_ssl: bool = True,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__(session=session)
        self.api_url = (api_url or self._in_cluster_url() or "").rstrip("/")
        self.token = token or self._read_service_account("token")
        self.ca_file = ca_file or self._default_ca_file()
        self.verify_ssl = verify_ssl

    @staticmethod
    def _in_cluster_url() -> str | None:
        host = os.environ.get("KUBERNETES_SERVICE_HOST")
        if not host:
            return None
        port = os.environ.get("KUBERNETES_SERVICE_PORT", "443")
        return f"https://{host}:{port}"

    @staticmethod
    def _read_service_account(name: str) -> str | None:
        path = SERVICE_ACCOUNT_DIR / name
        if not path.is_file():
            return None
        return path.read_text().strip() or None

    @staticmethod
    def _default_ca_file() -> Path | None:
        path = SERVICE_ACCOUNT_DIR / "ca.crt"
        return path if path.is_file() else None

    def is_configured(self) -> bool:
        return bool(self.api_url and self.token)

    def connector(self) -> aiohttp.BaseConnector | None:
        if not self.verify_ssl:
            return aiohttp.TCPConnector(ssl=False)
        if self.ca_file:
            return aiohttp.TCPConnector(ssl=ssl.create_default_context(cafile=str(self.ca_file)))
        return None

    def _headers(self, content_type: str | None = None) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self.token}", "Accept": "application/json"}
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    async def _get(self, path: str, params: dict[str, str] | None = None) -> Any:
        return await self.request(
            "GET", f"{self.api_url}{path}", headers=self._headers(), params=params
        )

    def _resource_path(self, kind: WorkloadKind, namespace: str, name: str = "") -> str:
        path = f"/apis/apps/v1/namespaces/{namespace}/{RESOURCE_PATHS[kind]}"
        return f"{path}/{name}" if name else path

    def _to_workload(self, item: dict[str, Any], kind: WorkloadKind) -> Workload:
        metadata = item.get("metadata") or {}
        spec = item.get("spec") or {}
        status = item.get("status") or {}
        containers = ((spec.get("template") or {}).get("spec") or {}).get("containers") or []
        return Workload(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            kind=kind,
            image=containers[0].get("image") if containers else None,
            annotations=metadata.get("annotations") or {},
            replicas=spec.get("replicas") or 0,
            ready_replicas=status.get("readyReplicas") or 0,
            created_at=_parse_datetime(metadata.get("creationTimestamp")),
        )

    async def list_namespaces(self) -> list[str]:
        data = await self._get("/api/v1/namespaces")
        return [
            item["metadata"]["name"]
            for item in (data or {}).get("items", [])
            if (item.get("metadata") or {}).get("name")
        ]

    async def _list_namespace(self, namespace: str) -> list[Workload]:
        workloads: list[Workload] = []
        for kind in RESOURCE_PATHS:
            data = await self._get(self._resource_path(kind, namespace))
            for item in (data or {}).get("items", []):
                workloads.append(self._to_workload(item, kind))
        return workloads

    async def list_workloads(self) -> list[Workload]:
        """List workloads of every namespace.

        A namespace that fails to list contributes nothing.
        """
        workloads: list[Workload] = []
        for namespace in await self.list_namespaces():
            try:
                workloads.extend(await self._list_namespace(namespace))
            except UnavailableError as e:
                logger.warning("namespace_list_failed", namespace=namespace, error=str(e))
        logger.debug("workloads_listed", count=len(workloads))
        return workloads

    async def get_workload(self, namespace: str, name: str) -> Workload:
        for kind in RESOURCE_PATHS:
            try:
                data = await self._get(self._resource_path(kind, namespace, name))
            except UnavailableError as e:
                if is_status(e, 404):
                    continue
                raise
            return self._to_workload(data or {}, kind)

        raise WorkloadNotFoundError(
            f"Workload {namespace}/{name} not found",
            provider=self.name,
            details={"namespace": namespace, "name": name},
        )

    async def patch_workload(
        self,
        workload: Workload,
        annotations: dict[str, str | None],
        image: str | None = None,
    ) -> Workload:
        operations = build_patch(workload, annotations, image)
        path = self._resource_path(workload.kind, workload.namespace, workload.name)
        data = await self.request(
            "PATCH",
            f"{self.api_url}{path}",
            headers=self._headers(JSON_PATCH),
            json=operations,
        )
        logger.info(
            "workload_patched",
            workload=workload.qualified_name,
            operations=len(operations),
            image=image,
        )
        return self._to_workload(data or {}, workload.kind)

    async def read_digest(self, workload: Workload) -> str | None:
        """Return the sha256 digest of the first running container image."""
        data = await self._get(
            f"/api/v1/namespaces/{workload.namespace}/pods",
            params={"labelSelector": f"app={workload.name}"},
        )
        for pod in (data or {}).get("items", []):
            for status in (pod.get("status") or {}).get("containerStatuses") or []:
                image_id = status.get("imageID") or ""
                if "@sha256:" in image_id:
                    return str(image_id.split("@sha256:", 1)[1])
        return None
