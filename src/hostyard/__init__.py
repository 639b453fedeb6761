"""Declarative topology resolution and bootstrapping for multi-tenant application servers."""

from .config import (
    AjpConfig,
    HostConfig,
    HttpConfig,
    ServerConfig,
    SslConfig,
    WebAppConfig,
    load_config,
    parse_config,
)
from .connectors import ConnectorProtocol, ConnectorSpec, build_connectors
from .exceptions import BootstrapFailure, ConfigurationError, HostyardError, ResolutionConflict
from .extensions import ExtensionRegistry
from .hosts import HostIndex, HostOrigin, HostResolver, HostSpec, resolve_hosts
from .lifecycle import (
    ArchiveLifecycle,
    DefaultLifecycle,
    HostLifecycle,
    LifecycleEvent,
    LifecycleListener,
    NativeLibraryLifecycle,
    lifecycle_for,
)
from .orchestrator import DeploymentOrchestrator, ServerState, Topology, resolve_topology
from .runtime import ContainerRuntime, InMemoryRuntime
from .webapps import ArchiveDetector, PackagingKind, WebAppDiscoverer, WebAppSpec, discover_web_apps

__all__ = [
    "AjpConfig",
    "ArchiveDetector",
    "ArchiveLifecycle",
    "BootstrapFailure",
    "ConfigurationError",
    "ConnectorProtocol",
    "ConnectorSpec",
    "ContainerRuntime",
    "DefaultLifecycle",
    "DeploymentOrchestrator",
    "ExtensionRegistry",
    "HostConfig",
    "HostIndex",
    "HostLifecycle",
    "HostOrigin",
    "HostResolver",
    "HostSpec",
    "HostyardError",
    "HttpConfig",
    "InMemoryRuntime",
    "LifecycleEvent",
    "LifecycleListener",
    "NativeLibraryLifecycle",
    "PackagingKind",
    "ResolutionConflict",
    "ServerConfig",
    "ServerState",
    "SslConfig",
    "Topology",
    "WebAppConfig",
    "WebAppDiscoverer",
    "WebAppSpec",
    "build_connectors",
    "discover_web_apps",
    "lifecycle_for",
    "load_config",
    "parse_config",
    "resolve_hosts",
    "resolve_topology",
]
