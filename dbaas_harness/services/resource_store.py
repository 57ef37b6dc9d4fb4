"""
Resource store - create/get/delete of cluster resources keyed by (kind, namespace, name).

The orchestrator only talks to the abstract ResourceStore; KubernetesResourceStore
backs it with the Kubernetes API through kubernetes_asyncio.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type, TypeVar

import aiohttp
from kubernetes_asyncio import client, config
from kubernetes_asyncio.client import ApiException

from dbaas_harness.config.logging import get_logger
from dbaas_harness.exceptions import NotFoundError, ResourceStoreError
from dbaas_harness.models.resources import Record, ResourceKind
from dbaas_harness.utils.retry import retry_on_k8s_error

logger = get_logger(__name__)

R = TypeVar("R", bound=Record)

NDB_GROUP = "ndb.nutanix.com"
NDB_VERSION = "v1alpha1"

# kind -> plural for the NDB custom resources
CUSTOM_RESOURCE_PLURALS = {
    ResourceKind.NDB_SERVER: "ndbservers",
    ResourceKind.DATABASE: "databases",
}


class ResourceStore(ABC):
    """Generic store of cluster resources."""

    @abstractmethod
    async def create(self, kind: ResourceKind, namespace: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """Create a resource and return it as stored. Fails if it already exists."""

    @abstractmethod
    async def get(self, kind: ResourceKind, namespace: str, name: str) -> Dict[str, Any]:
        """Return a resource; raise NotFoundError when it does not exist."""

    @abstractmethod
    async def delete(self, kind: ResourceKind, namespace: str, name: str) -> None:
        """Delete a resource; raise NotFoundError when it does not exist."""

    async def create_record(self, record: R, namespace: str) -> R:
        """Create ``record`` and return the stored version with generated fields."""
        created = await self.create(record.resource_kind, namespace, record.to_manifest())
        return type(record).from_manifest(created)

    async def get_record(self, record_cls: Type[R], namespace: str, name: str) -> R:
        return record_cls.from_manifest(await self.get(record_cls.resource_kind, namespace, name))

    async def close(self) -> None:
        """Release any connections held by the store."""


class KubernetesResourceStore(ResourceStore):
    """ResourceStore backed by the Kubernetes API."""

    def __init__(self, api_client: client.ApiClient):
        self.api_client = api_client
        self.core_api = client.CoreV1Api(api_client)
        self.custom_api = client.CustomObjectsApi(api_client)

    @classmethod
    async def from_kubeconfig(cls, kubeconfig_path: Optional[str] = None) -> "KubernetesResourceStore":
        """
        Build a store from a kubeconfig file, or from the in-cluster configuration
        when no path is given.
        """
        if kubeconfig_path:
            logger.info("loading_kubeconfig", path=kubeconfig_path)
            await config.load_kube_config(config_file=kubeconfig_path)
        else:
            logger.info("loading_in_cluster_config")
            config.load_incluster_config()
        return cls(client.ApiClient())

    async def close(self) -> None:
        await self.api_client.close()

    def _to_dict(self, obj: Any) -> Dict[str, Any]:
        if isinstance(obj, dict):
            return obj
        return self.api_client.sanitize_for_serialization(obj)

    def _translate(
        self, e: Exception, verb: str, kind: ResourceKind, namespace: str, name: str
    ) -> Exception:
        if isinstance(e, ApiException):
            if e.status == 404:
                return NotFoundError(kind.value, f"{namespace}/{name}", operation=verb)
            logger.error(
                "k8s_resource_call_failed",
                verb=verb,
                kind=kind.value,
                namespace=namespace,
                name=name,
                status=e.status,
                error=e.reason,
            )
            return ResourceStoreError(
                f"{kind.value} {namespace}/{name}: {e.reason}",
                operation=verb,
                status=e.status,
                details={"body": e.body},
            )
        logger.error(
            "k8s_connection_failed",
            verb=verb,
            kind=kind.value,
            namespace=namespace,
            name=name,
            error=str(e),
        )
        return ResourceStoreError(f"{kind.value} {namespace}/{name}: {e}", operation=verb)

    @retry_on_k8s_error(max_retries=3, initial_delay=1.0, max_delay=10.0)
    async def _create_raw(self, kind: ResourceKind, namespace: str, body: Dict[str, Any]) -> Any:
        if kind in CUSTOM_RESOURCE_PLURALS:
            return await self.custom_api.create_namespaced_custom_object(
                group=NDB_GROUP,
                version=NDB_VERSION,
                namespace=namespace,
                plural=CUSTOM_RESOURCE_PLURALS[kind],
                body=body,
            )
        if kind is ResourceKind.SECRET:
            return await self.core_api.create_namespaced_secret(namespace=namespace, body=body)
        if kind is ResourceKind.POD:
            return await self.core_api.create_namespaced_pod(namespace=namespace, body=body)
        return await self.core_api.create_namespaced_service(namespace=namespace, body=body)

    @retry_on_k8s_error(max_retries=3, initial_delay=1.0, max_delay=10.0)
    async def _get_raw(self, kind: ResourceKind, namespace: str, name: str) -> Any:
        if kind in CUSTOM_RESOURCE_PLURALS:
            return await self.custom_api.get_namespaced_custom_object(
                group=NDB_GROUP,
                version=NDB_VERSION,
                namespace=namespace,
                plural=CUSTOM_RESOURCE_PLURALS[kind],
                name=name,
            )
        if kind is ResourceKind.SECRET:
            return await self.core_api.read_namespaced_secret(name=name, namespace=namespace)
        if kind is ResourceKind.POD:
            return await self.core_api.read_namespaced_pod(name=name, namespace=namespace)
        return await self.core_api.read_namespaced_service(name=name, namespace=namespace)

    @retry_on_k8s_error(max_retries=3, initial_delay=1.0, max_delay=10.0)
    async def _delete_raw(self, kind: ResourceKind, namespace: str, name: str) -> None:
        if kind in CUSTOM_RESOURCE_PLURALS:
            await self.custom_api.delete_namespaced_custom_object(
                group=NDB_GROUP,
                version=NDB_VERSION,
                namespace=namespace,
                plural=CUSTOM_RESOURCE_PLURALS[kind],
                name=name,
            )
        elif kind is ResourceKind.SECRET:
            await self.core_api.delete_namespaced_secret(name=name, namespace=namespace)
        elif kind is ResourceKind.POD:
            await self.core_api.delete_namespaced_pod(name=name, namespace=namespace)
        else:
            await self.core_api.delete_namespaced_service(name=name, namespace=namespace)

    async def create(self, kind: ResourceKind, namespace: str, body: Dict[str, Any]) -> Dict[str, Any]:
        name = body.get("metadata", {}).get("name", "")
        try:
            result = await self._create_raw(kind, namespace, body)
        except (ApiException, aiohttp.ClientError) as e:
            raise self._translate(e, "create", kind, namespace, name) from e
        logger.debug("k8s_resource_created", kind=kind.value, namespace=namespace, name=name)
        return self._to_dict(result)

    async def get(self, kind: ResourceKind, namespace: str, name: str) -> Dict[str, Any]:
        try:
            result = await self._get_raw(kind, namespace, name)
        except (ApiException, aiohttp.ClientError) as e:
            raise self._translate(e, "get", kind, namespace, name) from e
        return self._to_dict(result)

    async def delete(self, kind: ResourceKind, namespace: str, name: str) -> None:
        try:
            await self._delete_raw(kind, namespace, name)
        except (ApiException, aiohttp.ClientError) as e:
            raise self._translate(e, "delete", kind, namespace, name) from e
        logger.debug("k8s_resource_deleted", kind=kind.value, namespace=namespace, name=name)
