"""Virtual host resolution primitives."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, Sequence

from msgspec import Struct

from .config import DEFAULT_HOST_NAME, HostConfig, WebAppConfig, absolute_path
from .exceptions import ConfigurationError, ResolutionConflict

logger = logging.getLogger(__name__)


class HostOrigin(str, Enum):
    """Where a resolved host came from."""

    DEFAULT = "default"
    CONFIGURED = "configured"
    ON_DEMAND = "on_demand"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


class HostSpec(Struct, frozen=True, kw_only=True):
    name: str
    app_base: str
    aliases: tuple[str, ...] = ()
    unpack_archives: bool = True
    deploy_on_startup: bool = True
    create_dirs: bool = True
    origin: HostOrigin = HostOrigin.CONFIGURED

    def names(self) -> tuple[str, ...]:
        return (self.name, *self.aliases)

    def matches(self, name: str) -> bool:
        return name.strip().lower() in self.names()


class HostIndex:
    """Look hosts up by canonical name or alias."""

    def __init__(self, hosts: Iterable[HostSpec], default_host_name: str = DEFAULT_HOST_NAME) -> None:
        self.hosts = tuple(hosts)
        self.default_host_name = default_host_name.strip().lower()
        self._names: dict[str, HostSpec] = {}
        for host in self.hosts:
            for name in host.names():
                self._names.setdefault(name, host)

    def __iter__(self) -> Iterator[HostSpec]:
        return iter(self.hosts)

    def __len__(self) -> int:
        return len(self.hosts)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.lookup(name) is not None

    def lookup(self, name: str) -> HostSpec | None:
        return self._names.get(name.strip().lower())

    @property
    def default(self) -> HostSpec:
        for host in self.hosts:
            if host.origin is HostOrigin.DEFAULT:
                return host
        host = self.lookup(self.default_host_name)
        if host is None:
            if not self.hosts:
                raise LookupError("no hosts resolved")
            return self.hosts[0]
        return host

    def position(self, host: HostSpec) -> int:
        return self.hosts.index(host)


class _HostDraft:
    __slots__ = ("aliases", "app_base", "explicit_base", "name", "options", "origin")

    def __init__(self, name: str, origin: HostOrigin, app_base: Path | None = None) -> None:
        self.name = name
        self.origin = origin
        self.aliases: list[str] = []
        self.app_base = app_base
        self.explicit_base = False
        self.options: dict[str, bool] = {}

    def names(self) -> tuple[str, ...]:
        return (self.name, *self.aliases)

    def add_alias(self, alias: str) -> None:
        if alias != self.name and alias not in self.aliases:
            self.aliases.append(alias)

    def freeze(self, cwd: Path) -> HostSpec:
        return HostSpec(
            name=self.name,
            aliases=tuple(self.aliases),
            app_base=str(self.app_base or cwd),
            origin=self.origin,
            **self.options,
        )


def _host_name(value: str, where: str) -> str:
    name = value.strip().lower()
    if not name:
        raise ConfigurationError(f"{where} contains an empty host name")
    return name


class HostResolver:
    """Compute the distinct virtual hosts named by ``hosts`` and ``web_apps``.

    Hosts are returned in first-seen order: configured entries first, then hosts
    created on demand for web applications. The default host is seeded ahead of
    everything else unless the ``hosts`` section defines it, in which case it
    keeps its configured position. A ``default`` entry always names the default
    host, even when it gives the host a name other than ``address``.
    """

    def __init__(
        self,
        *,
        default_host_name: str | None = DEFAULT_HOST_NAME,
        base_dir: Path | None = None,
        cwd: Path | None = None,
        apps_base: Path | None = None,
    ) -> None:
        self.default_host_name = (default_host_name or DEFAULT_HOST_NAME).strip().lower()
        self.cwd = cwd or Path.cwd()
        self.base_dir = base_dir or self.cwd
        self.apps_base = apps_base

    def resolve(
        self,
        hosts: Sequence[HostConfig] = (),
        web_apps: Sequence[WebAppConfig] | None = None,
    ) -> tuple[HostSpec, ...]:
        drafts: list[_HostDraft] = []
        index: dict[str, _HostDraft] = {}
        for entry in hosts:
            self._apply_entry(entry, drafts, index)
        if self._default_draft(drafts, index) is None:
            default = _HostDraft(self.default_host_name, HostOrigin.DEFAULT, app_base=self.cwd)
            drafts.insert(0, default)
            index[default.name] = default
        for web_app in web_apps or ():
            self._apply_web_app(web_app, drafts, index)
        return tuple(draft.freeze(self.cwd) for draft in drafts)

    def _default_draft(self, drafts: list[_HostDraft], index: dict[str, _HostDraft]) -> _HostDraft | None:
        for draft in drafts:
            if draft.origin is HostOrigin.DEFAULT:
                return draft
        return index.get(self.default_host_name)

    def _apply_entry(self, entry: HostConfig, drafts: list[_HostDraft], index: dict[str, _HostDraft]) -> None:
        where = f"Host entry '{entry.key}'"
        raw_name = entry.name or (self.default_host_name if entry.is_default else entry.key)
        canonical = _host_name(raw_name, where)
        aliases = [_host_name(alias, where) for alias in entry.aliases]

        # Entries merge only through their canonical name.
        draft = index.get(canonical)
        for alias in aliases:
            owner = index.get(alias)
            if owner is not None and owner is not draft:
                raise ConfigurationError(
                    f"{where} claims alias '{alias}', which already belongs to host '{owner.name}'"
                )

        if draft is None:
            draft = _HostDraft(canonical, HostOrigin.CONFIGURED)
            drafts.append(draft)
        if entry.is_default:
            draft.origin = HostOrigin.DEFAULT
        for alias in aliases:
            draft.add_alias(alias)

        if entry.app_base is not None:
            app_base = absolute_path(entry.app_base, self.base_dir)
            if draft.explicit_base and draft.app_base != app_base:
                raise ConfigurationError(
                    f"Host '{draft.name}' is given two application bases: '{draft.app_base}' and '{app_base}'"
                )
            draft.app_base = app_base
            draft.explicit_base = True
        for option in ("unpack_archives", "deploy_on_startup", "create_dirs"):
            value = getattr(entry, option)
            if value is not None:
                draft.options[option] = value

        for name in draft.names():
            index[name] = draft

    def _apply_web_app(self, web_app: WebAppConfig, drafts: list[_HostDraft], index: dict[str, _HostDraft]) -> None:
        refs = web_app.host_refs()
        if not refs:
            return
        root = web_app.root_path(base_dir=self.base_dir, cwd=self.cwd, apps_base=self.apps_base)
        known: list[_HostDraft] = []
        unknown: list[str] = []
        for ref in refs:
            existing = index.get(ref)
            if existing is None:
                unknown.append(ref)
            elif existing not in known:
                known.append(existing)

        if unknown and known:
            raise ResolutionConflict(
                f"Web application '{web_app.name}' names unknown host '{unknown[0]}' "
                f"alongside existing host '{known[0].name}'"
            )
        if unknown:
            draft = _HostDraft(unknown[0], HostOrigin.ON_DEMAND, app_base=root.parent)
            for alias in unknown[1:]:
                draft.add_alias(alias)
            drafts.append(draft)
            for name in draft.names():
                index[name] = draft
            logger.debug("created host %s for web application %s", draft.name, web_app.name)
            return
        default = self._default_draft(drafts, index)
        for draft in known:
            if draft.app_base is None and draft is not default:
                draft.app_base = root.parent


def resolve_hosts(
    hosts: Sequence[HostConfig] = (),
    web_apps: Sequence[WebAppConfig] | None = None,
    default_host_name: str | None = DEFAULT_HOST_NAME,
    *,
    base_dir: Path | None = None,
    cwd: Path | None = None,
    apps_base: Path | None = None,
) -> tuple[HostSpec, ...]:
    """Resolve hosts with a one-off :class:`HostResolver`."""

    resolver = HostResolver(default_host_name=default_host_name, base_dir=base_dir, cwd=cwd, apps_base=apps_base)
    return resolver.resolve(hosts, web_apps)
