"""kubernetes-asyncio list/watch transport for custom resources."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import structlog
from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio import config as k8s_config  # type: ignore[import-untyped]
from kubernetes_asyncio import watch  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from pager.errors import ClientConstructionError, PagerError, WatchExpiredError

_log = structlog.get_logger(component="collector.kube")

_HTTP_GONE = 410
_WATCH_TIMEOUT_SECONDS = 300


async def build_api_client(apiserver: str) -> k8s_client.ApiClient:
    """Create an ApiClient.

    An explicit *apiserver* URL (e.g. a ``kubectl proxy`` endpoint) is used
    as-is.  When empty, in-cluster service account config is tried first,
    then the local kubeconfig.

    Raises:
        ClientConstructionError: if no configuration can be loaded.
    """
    try:
        if apiserver:
            configuration = k8s_client.Configuration()
            configuration.host = apiserver
            _log.info("api client configured from url", apiserver=apiserver)
            return k8s_client.ApiClient(configuration)

        try:
            k8s_config.load_incluster_config()
            _log.info("api client configured from in-cluster service account")
        except k8s_config.ConfigException:
            await k8s_config.load_kube_config()
            _log.info("api client configured from kubeconfig")
        return k8s_client.ApiClient()
    except Exception as exc:
        raise ClientConstructionError(f"error creating api client: {exc}") from exc


class KubeListWatcher:
    """Lists and watches a custom resource through ``CustomObjectsApi``.

    Args:
        api_client: Configured kubernetes-asyncio ApiClient.
        group, version, plural: Resource coordinates.
        namespace: Restrict to one namespace; empty watches all namespaces.
    """

    def __init__(
        self,
        api_client: k8s_client.ApiClient,
        group: str,
        version: str,
        plural: str,
        namespace: str = "",
        timeout_seconds: int = _WATCH_TIMEOUT_SECONDS,
    ) -> None:
        self._api = k8s_client.CustomObjectsApi(api_client)
        self._group = group
        self._version = version
        self._plural = plural
        self._namespace = namespace
        self._timeout_seconds = timeout_seconds

    async def list(self) -> tuple[list[dict[str, Any]], str]:
        if self._namespace:
            resp = await self._api.list_namespaced_custom_object(
                self._group, self._version, self._namespace, self._plural
            )
        else:
            resp = await self._api.list_cluster_custom_object(self._group, self._version, self._plural)
        items = list(resp.get("items") or [])
        resource_version = str((resp.get("metadata") or {}).get("resourceVersion") or "")
        return items, resource_version

    async def watch(self, resource_version: str) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        if self._namespace:
            func = self._api.list_namespaced_custom_object
            args: tuple[str, ...] = (self._group, self._version, self._namespace, self._plural)
        else:
            func = self._api.list_cluster_custom_object
            args = (self._group, self._version, self._plural)

        async with watch.Watch() as w:
            try:
                async for event in w.stream(
                    func,
                    *args,
                    resource_version=resource_version,
                    timeout_seconds=self._timeout_seconds,
                    allow_watch_bookmarks=True,
                ):
                    event_type = str(event.get("type", ""))
                    raw = event.get("raw_object") or event.get("object") or {}
                    if event_type == "ERROR":
                        if isinstance(raw, dict) and raw.get("code") == _HTTP_GONE:
                            raise WatchExpiredError(str(raw.get("message", "resource version too old")))
                        raise PagerError(f"watch error event: {raw}")
                    yield event_type, raw
            except ApiException as exc:
                if exc.status == _HTTP_GONE:
                    raise WatchExpiredError(str(exc.reason)) from exc
                raise
