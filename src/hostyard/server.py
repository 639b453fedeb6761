"""Granian integration helpers."""

from __future__ import annotations

import logging
import multiprocessing
from pathlib import Path
from typing import Any, Callable, Mapping

import msgspec
from granian import Granian

from .connectors import ConnectorProtocol, ConnectorSpec
from .exceptions import BootstrapFailure
from .lifecycle import LifecycleListener, NativeLibraryLifecycle
from .runtime import ConnectorHandle, InMemoryRuntime

logger = logging.getLogger(__name__)

_DEV_PROFILES: frozenset[str] = frozenset({"development", "dev", "local", "test"})

CA_CERTIFICATE_PROPERTY = "SSLCACertificateFile"
VERIFY_CLIENT_PROPERTY = "SSLVerifyClient"


class GranianSettings(msgspec.Struct, frozen=True):
    target: str
    interface: str = "asgi"
    loop: str = "auto"
    native_loop: str = "rloop"
    workers: int = 1
    profile: str = "production"


def _normalize_path(path: str | Path | None) -> Path | None:
    """Coerce ``path`` into :class:`~pathlib.Path` instances when provided."""

    if path is None:
        return None
    return path if isinstance(path, Path) else Path(path)


def _path_state(path: str | Path | None) -> tuple[Path | None, bool]:
    """Return a tuple of the normalized path and whether it exists."""

    resolved = _normalize_path(path)
    if resolved is None:
        return None, False
    return resolved, resolved.exists()


def _missing_paths(paths: Mapping[str, tuple[Path | None, bool]]) -> list[str]:
    missing: list[str] = []
    for label, (path, exists) in paths.items():
        if path is None:
            missing.append(label)
        elif not exists:
            missing.append(f"{label} ({path})")
    return sorted(missing)


def _require_paths(paths: Mapping[str, tuple[Path | None, bool]], *, profile: str) -> bool:
    """Ensure TLS assets exist; development profiles may go without them."""

    missing = _missing_paths(paths)
    if not missing:
        return True
    if profile.lower() in _DEV_PROFILES:
        return False
    raise BootstrapFailure(f"TLS assets required for {profile!r} profile: missing {', '.join(missing)}")


def _ensure_client_auth(ca_bundle: tuple[Path | None, bool], required: bool) -> Path | None:
    """Validate client-auth requirements before configuring Granian."""

    path, exists = ca_bundle
    if not required:
        return path if exists else None
    if path is None:
        raise BootstrapFailure("Client certificate verification requested without a CA bundle")
    if not exists:
        raise BootstrapFailure(f"Client CA bundle not found at {path}")
    return path


def granian_options(connector: ConnectorSpec, settings: GranianSettings) -> dict[str, Any] | None:
    """Translate ``connector`` into Granian keyword arguments.

    Returns ``None`` for an HTTPS connector whose TLS assets are missing under a
    development profile; the listener is skipped in that case.
    """

    if connector.protocol is ConnectorProtocol.AJP:
        raise BootstrapFailure(f"Granian cannot serve {connector.protocol_name} connectors (port {connector.port})")

    options: dict[str, Any] = {
        "address": connector.address or "0.0.0.0",
        "port": connector.port,
        "interface": settings.interface,
        "workers": settings.workers,
    }
    if not connector.secure:
        return options

    certificate = _path_state(connector.certificate_file)
    key = _path_state(connector.certificate_key_file)
    paths = {"certificate_file": certificate, "certificate_key_file": key}
    if not _require_paths(paths, profile=settings.profile):
        logger.warning("skipping HTTPS connector on port %s: missing TLS assets", connector.port)
        return None

    ca_property = connector.properties.get(CA_CERTIFICATE_PROPERTY)
    verify_client = str(connector.properties.get(VERIFY_CLIENT_PROPERTY, "none")).lower() in {"require", "true"}
    ca_bundle = _path_state(str(ca_property) if ca_property is not None else None)
    resolved_ca = _ensure_client_auth(ca_bundle, verify_client)

    options["ssl_cert"] = certificate[0]
    options["ssl_key"] = key[0]
    if resolved_ca is not None:
        options["ssl_ca"] = resolved_ca
    if verify_client:
        options["ssl_client_verify"] = True
    return options


def _serve(target: str, options: Mapping[str, Any]) -> None:
    Granian(target, **options).serve()


class GranianRuntime(InMemoryRuntime):
    """Serve the deployed topology's HTTP and HTTPS connectors with Granian.

    Every listener runs in its own Granian server; all but the last are started
    in child processes and the last one serves in the foreground.
    """

    def __init__(
        self,
        settings: GranianSettings,
        *,
        process_factory: Callable[..., Any] | None = None,
    ) -> None:
        super().__init__()
        self.settings = settings
        self.servers: list[dict[str, Any]] = []
        self.native_library = False
        self._process_factory = process_factory or multiprocessing.Process
        self._processes: list[Any] = []

    def attach_server_listener(self, listener: LifecycleListener) -> None:
        super().attach_server_listener(listener)
        if isinstance(listener, NativeLibraryLifecycle):
            self.native_library = True

    def create_connector(self, spec: ConnectorSpec) -> ConnectorHandle:
        options = granian_options(spec, self.settings)
        handle = super().create_connector(spec)
        if options is not None:
            self.servers.append(options)
        return handle

    @property
    def loop(self) -> str:
        return self.settings.native_loop if self.native_library else self.settings.loop

    def serve(self) -> None:
        if not self.servers:
            raise BootstrapFailure("No connector can be served by Granian")
        listeners = [{**options, "loop": self.loop} for options in self.servers]
        for options in listeners[:-1]:
            process = self._process_factory(target=_serve, args=(self.settings.target, options))
            process.start()
            self._processes.append(process)
            logger.info(
                "serving %s on %s:%s in a child process",
                self.settings.target,
                options["address"],
                options["port"],
            )
        try:
            _serve(self.settings.target, listeners[-1])
        finally:
            for process in self._processes:
                process.terminate()
                process.join()
            self._processes.clear()
