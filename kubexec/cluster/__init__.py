"""Access to the cluster: configuration, pod listing and the Executor resource."""

from kubexec.cluster.client import load_k8s_config
from kubexec.cluster.reader import ClusterStateReader, KubernetesClusterReader
from kubexec.cluster.store import ExecutorStore, KubernetesExecutorStore

__all__ = [
    "load_k8s_config",
    "ClusterStateReader",
    "KubernetesClusterReader",
    "ExecutorStore",
    "KubernetesExecutorStore",
]
