"""
Snapverify - Cluster Access

Layers, leaves first:

- ClusterGateway: one HTTP request per call, classifies transport failures
- RetryingCaller: retry/status policy on top of the gateway
- ClusterApi: typed cluster operations used by the pipeline
"""

from snapverify.cluster.api import ClusterApi
from snapverify.cluster.caller import DEFAULT_MAX_ATTEMPTS, RetryingCaller
from snapverify.cluster.gateway import ApiResponse, ClusterGateway

__all__ = [
    "ApiResponse",
    "ClusterGateway",
    "RetryingCaller",
    "DEFAULT_MAX_ATTEMPTS",
    "ClusterApi",
]
