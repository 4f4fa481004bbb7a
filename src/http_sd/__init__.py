"""
Prometheus HTTP service discovery adapter.

Polls HTTP endpoints that list monitorable targets and keeps file_sd
compatible files up to date for Prometheus to pick up.
"""

__version__ = "0.1.0"

from ._types import ADDRESS_LABEL, LabelSet, RawTargetGroup, TargetGroup, merge_labels
from .config import (
    ConfigurationError,
    CoordinationPolicy,
    DiscoveryConfig,
    HTTPSDError,
    ServiceConfig,
    pair_sources,
)
from .targetgroup import build_target_group, build_target_groups
from .discovery import DecodeError, DiscoveryError, FetchError, HTTPDiscovery
from .adapter import FileSDWriter
from .coordinator import DiscoveryCoordinator
from .metrics import RequestMetrics
from .shutdown import ShutdownSignal

__all__ = [
    # Version
    "__version__",

    # Target groups
    "ADDRESS_LABEL",
    "LabelSet",
    "RawTargetGroup",
    "TargetGroup",
    "merge_labels",
    "build_target_group",
    "build_target_groups",

    # Configuration
    "ConfigurationError",
    "CoordinationPolicy",
    "DiscoveryConfig",
    "HTTPSDError",
    "ServiceConfig",
    "pair_sources",

    # Discovery
    "DecodeError",
    "DiscoveryError",
    "FetchError",
    "HTTPDiscovery",
    "DiscoveryCoordinator",
    "ShutdownSignal",

    # Output and instrumentation
    "FileSDWriter",
    "RequestMetrics",
]
