"""API clients for the cloud provider and the cluster."""

from fipcontroller.providers.base import CloudProvider, ClusterProvider
from fipcontroller.providers.hcloud_client import AssignResponse, HetznerCloudClient
from fipcontroller.providers.kubernetes_client import K8sConfig, KubernetesClient

__all__ = [
    "CloudProvider",
    "ClusterProvider",
    "AssignResponse",
    "HetznerCloudClient",
    "K8sConfig",
    "KubernetesClient",
]
