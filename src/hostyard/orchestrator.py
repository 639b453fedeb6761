"""Deployment orchestration: configuration, topology and the container runtime."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Mapping

from msgspec import Struct

from .config import ServerConfig, absolute_path, parse_config
from .connectors import ConnectorSpec, build_connectors, native_library_requested
from .exceptions import BootstrapFailure, HostyardError
from .extensions import ExtensionRegistry
from .hosts import HostIndex, HostSpec, resolve_hosts
from .keystore import KeystoreGenerator, SelfSignedKeystore
from .lifecycle import HostLifecycle, NativeLibraryLifecycle, lifecycle_for
from .runtime import ContainerRuntime, InMemoryRuntime
from .webapps import ArchiveDetector, PackagingDetector, WebAppSpec, discover_web_apps

logger = logging.getLogger(__name__)


class ServerState(str, Enum):
    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    DEPLOYED = "deployed"
    STARTED = "started"
    FAILED = "failed"
    STOPPED = "stopped"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


class Topology(Struct, frozen=True, kw_only=True):
    """Everything a deployment pass hands to the container runtime."""

    default_host: str
    address: str | None = None
    connectors: tuple[ConnectorSpec, ...] = ()
    hosts: tuple[HostSpec, ...] = ()
    web_apps: tuple[WebAppSpec, ...] = ()
    native_library: bool = False

    def host(self, name: str) -> HostSpec | None:
        return HostIndex(self.hosts, self.default_host).lookup(name)

    def apps_for(self, host: str | HostSpec) -> tuple[WebAppSpec, ...]:
        """Web applications deployed on ``host``, in discovery order."""

        spec = host if isinstance(host, HostSpec) else self.host(host)
        if spec is None:
            return ()
        return tuple(web_app for web_app in self.web_apps if spec.name in web_app.hosts)

    def deployments(self) -> Iterator[tuple[HostSpec, tuple[WebAppSpec, ...]]]:
        for host in self.hosts:
            yield host, self.apps_for(host)


def resolve_topology(
    config: ServerConfig,
    *,
    detector: PackagingDetector | None = None,
    extensions: ExtensionRegistry | None = None,
    cwd: Path | None = None,
) -> Topology:
    """Derive connectors, hosts and web applications from ``config`` without side effects."""

    cwd = cwd or Path.cwd()
    base_dir = config.base_path(cwd)
    apps_base = absolute_path(config.apps_base, base_dir) if config.apps_base else None
    connectors = build_connectors(
        config.http,
        config.ssl,
        config.ajp,
        config.address,
        port=config.port,
        base_dir=base_dir,
    )
    hosts = resolve_hosts(
        config.hosts,
        config.web_apps,
        config.default_host_name,
        base_dir=base_dir,
        cwd=cwd,
        apps_base=apps_base,
    )
    web_apps = discover_web_apps(config, hosts, detector=detector, extensions=extensions, cwd=cwd)
    return Topology(
        default_host=HostIndex(hosts, config.default_host_name).default.name,
        address=config.address,
        connectors=connectors,
        hosts=hosts,
        web_apps=web_apps,
        native_library=native_library_requested(config.http),
    )


class DeploymentOrchestrator:
    """Drive one server instance from configuration to a running container.

    ``configure`` resolves the topology, ``deploy`` hands it to the runtime and
    ``start``/``stop`` delegate to the runtime. ``deploy`` runs once per
    configured instance; calling it again is a caller error and raises
    :class:`RuntimeError` rather than re-attaching anything. A failed deployment
    is not rolled back.
    """

    def __init__(
        self,
        config: ServerConfig | Mapping[Any, Any] | None = None,
        *,
        runtime: ContainerRuntime | None = None,
        detector: PackagingDetector | None = None,
        keystore: KeystoreGenerator | None = None,
        extensions: ExtensionRegistry | None = None,
        cwd: Path | None = None,
    ) -> None:
        self.config = config if isinstance(config, ServerConfig) else parse_config(config)
        self.runtime: ContainerRuntime = runtime if runtime is not None else InMemoryRuntime()
        self.detector = detector or ArchiveDetector()
        self.keystore = keystore
        self.extensions = extensions or ExtensionRegistry()
        self.cwd = cwd
        self.state = ServerState.UNCONFIGURED
        self.topology: Topology | None = None
        self.host_listeners: dict[str, HostLifecycle] = {}

    def configure(self) -> Topology:
        if self.topology is not None:
            return self.topology
        self.topology = resolve_topology(
            self.config,
            detector=self.detector,
            extensions=self.extensions,
            cwd=self.cwd,
        )
        self.state = ServerState.CONFIGURED
        logger.debug(
            "configured %d connector(s), %d host(s), %d web application(s)",
            len(self.topology.connectors),
            len(self.topology.hosts),
            len(self.topology.web_apps),
        )
        return self.topology

    def deploy(self) -> Topology:
        if self.state is ServerState.UNCONFIGURED:
            self.configure()
        if self.state is not ServerState.CONFIGURED or self.topology is None:
            raise RuntimeError(f"deploy() requires a configured server (state is {self.state.value})")
        topology = self.topology
        try:
            self._ensure_keystores(topology)
            if topology.native_library:
                self.runtime.attach_server_listener(NativeLibraryLifecycle())
            for host, web_apps in topology.deployments():
                self._deploy_host(host, web_apps)
            for connector in topology.connectors:
                self.runtime.create_connector(connector)
                logger.info(
                    "%s connector listening on %s:%s",
                    connector.protocol_name,
                    connector.address or "*",
                    connector.port,
                )
        except HostyardError:
            self.state = ServerState.FAILED
            raise
        except Exception as exc:
            self.state = ServerState.FAILED
            raise BootstrapFailure(f"Deployment failed: {exc}") from exc
        self.state = ServerState.DEPLOYED
        return topology

    def start(self) -> None:
        if self.state in (ServerState.UNCONFIGURED, ServerState.CONFIGURED):
            self.deploy()
        if self.state is not ServerState.DEPLOYED:
            raise RuntimeError(f"start() requires a deployed server (state is {self.state.value})")
        try:
            self.runtime.start()
        except BootstrapFailure:
            self.state = ServerState.FAILED
            raise
        except Exception as exc:
            self.state = ServerState.FAILED
            raise BootstrapFailure(f"Server failed to start: {exc}") from exc
        self.state = ServerState.STARTED

    def stop(self) -> None:
        # A failed start may leave contexts running.
        failed_running = self.state is ServerState.FAILED and self.runtime.running
        if self.state is not ServerState.STARTED and not failed_running:
            return
        self.runtime.stop()
        self.state = ServerState.STOPPED

    def _deploy_host(self, host: HostSpec, web_apps: tuple[WebAppSpec, ...]) -> None:
        handle = self.runtime.create_host(host)
        for alias in host.aliases:
            self.runtime.add_alias(handle, alias)
        host_listener = HostLifecycle(host)
        for web_app in web_apps:
            context = self.runtime.create_context(handle, web_app.context_path, web_app.doc_base)
            self.runtime.attach_lifecycle_listener(context, lifecycle_for(web_app, host))
            host_listener.add(web_app, context)
            logger.info(
                "deployed %s (%s) at %s on %s",
                web_app.name,
                web_app.packaging,
                web_app.context_path,
                host.name,
            )
        self.runtime.attach_lifecycle_listener(handle, host_listener)
        self.host_listeners[host.name] = host_listener

    def _ensure_keystores(self, topology: Topology) -> None:
        for connector in topology.connectors:
            if connector.keystore is None:
                continue
            generator = self.keystore
            if generator is None:
                default = topology.host(topology.default_host)
                names = default.names() if default is not None else (topology.default_host,)
                generator = SelfSignedKeystore(hostnames=names)
            generator.ensure_default_keystore(connector.keystore)
