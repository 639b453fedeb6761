"""Lifecycle listeners attached to the server, hosts and web application contexts."""

from __future__ import annotations

import logging
import shutil
import zipfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Mapping

from .exceptions import BootstrapFailure
from .hosts import HostSpec
from .webapps import PackagingKind, WebAppSpec

logger = logging.getLogger(__name__)

WEB_APP_ATTRIBUTE = "hostyard.web_app"
ENVIRONMENT_ATTRIBUTE = "hostyard.environment"


class LifecycleEvent(str, Enum):
    BEFORE_INIT = "before_init"
    AFTER_INIT = "after_init"
    BEFORE_START = "before_start"
    AFTER_START = "after_start"
    BEFORE_STOP = "before_stop"
    AFTER_STOP = "after_stop"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


class LifecycleListener:
    """Dispatch lifecycle events to ``on_<event>`` handlers."""

    def lifecycle_event(self, event: LifecycleEvent, target: Any) -> None:
        handler = getattr(self, f"on_{event.value}", None)
        if handler is not None:
            handler(target)


class WebAppLifecycle(LifecycleListener):
    """Prepare a web application context before it starts."""

    packaging: ClassVar[PackagingKind]

    def __init__(self, web_app: WebAppSpec, host: HostSpec) -> None:
        self.web_app = web_app
        self.host = host

    def on_before_start(self, context: Any) -> None:
        context.attributes[WEB_APP_ATTRIBUTE] = self.web_app
        context.attributes[ENVIRONMENT_ATTRIBUTE] = self.web_app.environment
        self.configure(context)

    def configure(self, context: Any) -> None:
        raise NotImplementedError


class DefaultLifecycle(WebAppLifecycle):
    """Lifecycle for applications deployed from a plain directory."""

    packaging = PackagingKind.DIRECTORY

    def configure(self, context: Any) -> None:
        doc_base = Path(context.doc_base)
        if not doc_base.is_dir():
            raise BootstrapFailure(
                f"Document base '{doc_base}' of web application '{self.web_app.name}' is not a directory"
            )


class ArchiveLifecycle(WebAppLifecycle):
    """Lifecycle for applications packaged as a single archive.

    When the owning host unpacks archives, the archive is expanded into
    ``<app_base>/<name>`` before start and the expansion is removed again
    after the context stops.
    """

    packaging = PackagingKind.ARCHIVE

    def __init__(self, web_app: WebAppSpec, host: HostSpec) -> None:
        super().__init__(web_app, host)
        self.expanded: Path | None = None

    def expansion_dir(self) -> Path:
        target = Path(self.host.app_base) / self.web_app.name
        if target == Path(self.web_app.doc_base):
            target = target.with_name(f"{target.name}.expanded")
        return target

    def configure(self, context: Any) -> None:
        archive = Path(self.web_app.doc_base)
        if not archive.is_file():
            raise BootstrapFailure(f"Archive '{archive}' of web application '{self.web_app.name}' not found")
        if not self.host.unpack_archives:
            return
        target = self.expansion_dir()
        if not target.exists():
            try:
                with zipfile.ZipFile(archive) as bundle:
                    bundle.extractall(target)
            except zipfile.BadZipFile as exc:
                raise BootstrapFailure(f"Archive '{archive}' is not a valid zip file") from exc
            self.expanded = target
            logger.info("expanded %s into %s", archive, target)
        context.doc_base = str(target)

    def on_after_stop(self, context: Any) -> None:
        if self.expanded is None:
            return
        shutil.rmtree(self.expanded, ignore_errors=True)
        self.expanded = None
        context.doc_base = self.web_app.doc_base


WEB_APP_LIFECYCLES: Mapping[PackagingKind, type[WebAppLifecycle]] = {
    PackagingKind.DIRECTORY: DefaultLifecycle,
    PackagingKind.ARCHIVE: ArchiveLifecycle,
}


def lifecycle_for(web_app: WebAppSpec, host: HostSpec) -> WebAppLifecycle:
    """Return the packaging-aware listener for ``web_app`` deployed on ``host``."""

    return WEB_APP_LIFECYCLES[web_app.packaging](web_app, host)


@dataclass(slots=True, frozen=True)
class AppHolder:
    web_app: WebAppSpec
    context: Any


class HostLifecycle(LifecycleListener):
    """Aggregate every web application deployed under one host."""

    def __init__(self, host: HostSpec) -> None:
        self.host = host
        self.app_holders: list[AppHolder] = []

    def add(self, web_app: WebAppSpec, context: Any) -> None:
        self.app_holders.append(AppHolder(web_app, context))

    @property
    def web_apps(self) -> tuple[WebAppSpec, ...]:
        return tuple(holder.web_app for holder in self.app_holders)

    def on_before_start(self, host: Any) -> None:
        if self.host.create_dirs:
            Path(self.host.app_base).mkdir(parents=True, exist_ok=True)
        logger.info("starting host %s with %d web application(s)", self.host.name, len(self.app_holders))


class NativeLibraryLifecycle(LifecycleListener):
    """Server-level request for the runtime's native I/O library."""

    def __init__(self, library: str = "apr") -> None:
        self.library = library

    def on_before_init(self, server: Any) -> None:
        logger.debug("native library %s requested", self.library)
