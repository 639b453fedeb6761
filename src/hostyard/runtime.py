"""Container runtime boundary.

The orchestrator only talks to a :class:`ContainerRuntime`. :class:`InMemoryRuntime`
keeps every host, context and connector as plain handles and drives lifecycle
listeners on ``start``/``stop``; it backs ``hostyard plan`` and the test-suite and
is the base for the Granian runtime.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

from .connectors import ConnectorSpec
from .exceptions import BootstrapFailure
from .hosts import HostSpec
from .lifecycle import LifecycleEvent, LifecycleListener

logger = logging.getLogger(__name__)


class ContainerRuntime(Protocol):
    running: bool

    def create_host(self, host: HostSpec) -> Any: ...

    def add_alias(self, host: Any, alias: str) -> None: ...

    def create_context(self, host: Any, path: str, doc_base: str) -> Any: ...

    def attach_lifecycle_listener(self, target: Any, listener: LifecycleListener) -> None: ...

    def attach_server_listener(self, listener: LifecycleListener) -> None: ...

    def create_connector(self, spec: ConnectorSpec) -> Any: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...


@dataclass(slots=True, eq=False)
class ContextHandle:
    host: HostHandle
    path: str
    doc_base: str
    listeners: list[LifecycleListener] = field(default_factory=list)
    attributes: dict[str, Any] = field(default_factory=dict)
    running: bool = False


@dataclass(slots=True, eq=False)
class HostHandle:
    spec: HostSpec
    aliases: list[str] = field(default_factory=list)
    contexts: list[ContextHandle] = field(default_factory=list)
    listeners: list[LifecycleListener] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def app_base(self) -> str:
        return self.spec.app_base

    def find_context(self, path: str) -> ContextHandle | None:
        for context in self.contexts:
            if context.path == path:
                return context
        return None


@dataclass(slots=True, eq=False)
class ConnectorHandle:
    spec: ConnectorSpec

    @property
    def bind(self) -> tuple[str, int]:
        return (self.spec.address or "0.0.0.0", self.spec.port)


class InMemoryRuntime:
    """Record the deployed topology and dispatch lifecycle events in process."""

    def __init__(self) -> None:
        self.hosts: list[HostHandle] = []
        self.connectors: list[ConnectorHandle] = []
        self.listeners: list[LifecycleListener] = []
        self.running = False

    def find_host(self, name: str) -> HostHandle | None:
        wanted = name.strip().lower()
        for host in self.hosts:
            if host.name == wanted or wanted in host.aliases:
                return host
        return None

    def create_host(self, host: HostSpec) -> HostHandle:
        if self.find_host(host.name) is not None:
            raise BootstrapFailure(f"Host '{host.name}' already exists")
        handle = HostHandle(host)
        self.hosts.append(handle)
        return handle

    def add_alias(self, host: HostHandle, alias: str) -> None:
        owner = self.find_host(alias)
        if owner is not None and owner is not host:
            raise BootstrapFailure(f"Alias '{alias}' is already bound to host '{owner.name}'")
        if alias not in host.aliases:
            host.aliases.append(alias)

    def create_context(self, host: HostHandle, path: str, doc_base: str) -> ContextHandle:
        if host.find_context(path) is not None:
            raise BootstrapFailure(f"Context '{path}' already exists on host '{host.name}'")
        context = ContextHandle(host, path, doc_base)
        host.contexts.append(context)
        return context

    def attach_lifecycle_listener(self, target: HostHandle | ContextHandle, listener: LifecycleListener) -> None:
        target.listeners.append(listener)

    def attach_server_listener(self, listener: LifecycleListener) -> None:
        self.listeners.append(listener)

    def create_connector(self, spec: ConnectorSpec) -> ConnectorHandle:
        handle = ConnectorHandle(spec)
        for existing in self.connectors:
            if existing.bind == handle.bind:
                raise BootstrapFailure(f"Port {spec.port} is already bound by the {existing.spec.protocol} connector")
        self.connectors.append(handle)
        return handle

    def start(self) -> None:
        if self.running:
            return
        self._fire(self.listeners, LifecycleEvent.BEFORE_INIT, self)
        self._fire(self.listeners, LifecycleEvent.AFTER_INIT, self)
        self._fire(self.listeners, LifecycleEvent.BEFORE_START, self)
        for host in self.hosts:
            self._fire(host.listeners, LifecycleEvent.BEFORE_START, host)
            for context in host.contexts:
                self._fire(context.listeners, LifecycleEvent.BEFORE_START, context)
                context.running = True
                self._fire(context.listeners, LifecycleEvent.AFTER_START, context)
            self._fire(host.listeners, LifecycleEvent.AFTER_START, host)
        self.running = True
        self._fire(self.listeners, LifecycleEvent.AFTER_START, self)
        self.serve()

    def serve(self) -> None:
        """Hook for runtimes that accept connections once everything has started."""

    def stop(self) -> None:
        if not self.running:
            return
        self._fire(self.listeners, LifecycleEvent.BEFORE_STOP, self)
        for host in reversed(self.hosts):
            self._fire(host.listeners, LifecycleEvent.BEFORE_STOP, host)
            for context in reversed(host.contexts):
                self._fire(context.listeners, LifecycleEvent.BEFORE_STOP, context)
                context.running = False
                self._fire(context.listeners, LifecycleEvent.AFTER_STOP, context)
            self._fire(host.listeners, LifecycleEvent.AFTER_STOP, host)
        self.running = False
        self._fire(self.listeners, LifecycleEvent.AFTER_STOP, self)

    def _fire(self, listeners: Iterable[LifecycleListener], event: LifecycleEvent, target: Any) -> None:
        for listener in listeners:
            listener.lifecycle_event(event, target)
