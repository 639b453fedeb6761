"""Server configuration objects and the normalization pass that builds them.

Raw configuration arrives from several layers (documents on disk, command
line overrides, programmatic mappings) using a mix of key spellings. Every key
is canonicalized before :func:`msgspec.convert` turns the tree into frozen
structs, so resolution code never has to care how an option was spelled.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Mapping

import msgspec
from msgspec import Meta, Struct, field

from .exceptions import ConfigurationError
from .serialization import read_document

DEFAULT_HOST_NAME = "localhost"
DEFAULT_CONTEXT_NAME = "default"
DEFAULT_HOST_KEY = "default"
DEFAULT_HTTP_PORT = 3000
DEFAULT_SSL_PORT = 8443
DEFAULT_AJP_PORT = 8009
DEFAULT_ENVIRONMENT = "development"
CONFIG_ENV_VAR = "HOSTYARD_CONFIG"

Port = Annotated[int, Meta(ge=1, le=65535)]

_KEY_ALIASES: dict[str, str] = {
    "unpackWARs": "unpack_archives",
    "unpack_wars": "unpack_archives",
    "appBase": "app_base",
    "deployOnStartup": "deploy_on_startup",
    "createDirs": "create_dirs",
    "contextPath": "context_path",
    "webAppDir": "web_app_dir",
    "rootDir": "root_dir",
    "appsBase": "apps_base",
    "hostName": "host_name",
    "baseDir": "base_dir",
}

_HTTP_FIELDS: dict[str, str] = {"port": "port", "address": "address", "nio": "nio", "apr": "apr"}
_SSL_FIELDS: dict[str, str] = {
    "port": "port",
    "address": "address",
    "nio": "nio",
    "keystore": "keystore",
    "keystoreFile": "keystore",
    "keystore_file": "keystore",
    "SSLCertificateFile": "certificate_file",
    "certificate_file": "certificate_file",
    "SSLCertificateKeyFile": "certificate_key_file",
    "certificate_key_file": "certificate_key_file",
}
_AJP_FIELDS: dict[str, str] = {"port": "port", "address": "address"}


def canonical_key(key: Any) -> str:
    """Return the canonical spelling of ``key`` (symbols and strings alike)."""

    if isinstance(key, Enum):
        key = key.value
    return str(key).strip().lstrip(":")


def structural_key(key: Any) -> str:
    """Canonicalize a key naming a structural option rather than a protocol property."""

    text = canonical_key(key)
    text = _KEY_ALIASES.get(text, text).replace("-", "_")
    return _KEY_ALIASES.get(text, text)


def absolute_path(path: str | os.PathLike[str], base: Path) -> Path:
    """Resolve ``path`` against ``base`` without following symlinks."""

    candidate = Path(path).expanduser()
    if not candidate.is_absolute():
        candidate = base / candidate
    return Path(os.path.normpath(candidate))


class HttpConfig(Struct, frozen=True, kw_only=True):
    port: Port | None = None
    address: str | None = None
    nio: bool = False
    apr: bool = False
    properties: dict[str, Any] = field(default_factory=dict)


class SslConfig(Struct, frozen=True, kw_only=True):
    port: Port = DEFAULT_SSL_PORT
    address: str | None = None
    nio: bool = False
    keystore: str | None = None
    certificate_file: str | None = None
    certificate_key_file: str | None = None
    properties: dict[str, Any] = field(default_factory=dict)


class AjpConfig(Struct, frozen=True, kw_only=True):
    port: Port = DEFAULT_AJP_PORT
    address: str | None = None
    properties: dict[str, Any] = field(default_factory=dict)


class HostConfig(Struct, frozen=True, kw_only=True, forbid_unknown_fields=True):
    """One entry of the ``hosts`` section, in its normalized map form."""

    key: str
    name: str | None = None
    aliases: tuple[str, ...] = ()
    app_base: str | None = None
    unpack_archives: bool | None = None
    deploy_on_startup: bool | None = None
    create_dirs: bool | None = None

    @property
    def is_default(self) -> bool:
        return self.key == DEFAULT_HOST_KEY


class WebAppConfig(Struct, frozen=True, kw_only=True, forbid_unknown_fields=True):
    """One entry of the ``web_apps`` section."""

    name: str
    context_path: str | None = None
    root_dir: str | None = None
    web_app_dir: str | None = None
    host: str | tuple[str, ...] | None = None
    hosts: str | tuple[str, ...] | None = None
    host_name: str | None = None
    environment: str | None = None
    extensions: dict[str, dict[str, Any]] = field(default_factory=dict)

    def host_refs(self) -> tuple[str, ...]:
        """Return the lower-cased host references in declaration order."""

        refs: list[str] = []
        for value in (self.host, self.hosts, self.host_name):
            if value is None:
                continue
            candidates = (value,) if isinstance(value, str) else value
            for candidate in candidates:
                name = canonical_key(candidate).lower()
                if not name:
                    raise ConfigurationError(f"Web application '{self.name}' names an empty host")
                if name not in refs:
                    refs.append(name)
        return tuple(refs)

    def root_path(self, *, base_dir: Path, cwd: Path, apps_base: Path | None = None) -> Path:
        if self.root_dir:
            return absolute_path(self.root_dir, cwd)
        if self.web_app_dir:
            return absolute_path(self.web_app_dir, base_dir)
        if apps_base is not None:
            return apps_base / self.name
        return cwd


class ServerConfig(Struct, frozen=True, kw_only=True, forbid_unknown_fields=True):
    """Typed configuration for a :class:`~hostyard.orchestrator.DeploymentOrchestrator`."""

    address: str | None = None
    port: Port = DEFAULT_HTTP_PORT
    environment: str = DEFAULT_ENVIRONMENT
    context_path: str = "/"
    web_app_dir: str | None = None
    apps_base: str | None = None
    base_dir: str | None = None
    http: HttpConfig | None = None
    ssl: SslConfig | None = None
    ajp: AjpConfig | None = None
    hosts: tuple[HostConfig, ...] = ()
    web_apps: tuple[WebAppConfig, ...] | None = None
    extensions: dict[str, dict[str, Any]] = field(default_factory=dict)

    def __getitem__(self, key: Any) -> Any:
        name = structural_key(key)
        if name not in self.__struct_fields__:
            raise KeyError(key)
        return getattr(self, name)

    @property
    def default_host_name(self) -> str:
        """Name of the implicit host; the bind address doubles as its name."""

        return (self.address or DEFAULT_HOST_NAME).strip().lower()

    @property
    def http_configured(self) -> bool:
        return self.http is not None

    @property
    def ssl_enabled(self) -> bool:
        return self.ssl is not None

    @property
    def ajp_enabled(self) -> bool:
        return self.ajp is not None

    def base_path(self, cwd: Path) -> Path:
        """Directory that relative ``web_app_dir`` and ``apps_base`` values resolve against."""

        if self.base_dir:
            return absolute_path(self.base_dir, cwd)
        return cwd


def parse_config(raw: Mapping[Any, Any] | None = None) -> ServerConfig:
    """Normalize ``raw`` and convert it into a :class:`ServerConfig`."""

    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Configuration root must be a mapping")

    data: dict[str, Any] = {structural_key(key): value for key, value in raw.items()}
    if "http" in data:
        data["http"] = _protocol_section("http", data["http"], _HTTP_FIELDS)
    if "ssl" in data:
        data["ssl"] = _protocol_section("ssl", data["ssl"], _SSL_FIELDS)
    if "ajp" in data:
        data["ajp"] = _protocol_section("ajp", data["ajp"], _AJP_FIELDS)
    if "hosts" in data:
        data["hosts"] = _hosts_section(data["hosts"])
    if "web_apps" in data:
        data["web_apps"] = _web_apps_section(data["web_apps"])
    if "extensions" in data:
        data["extensions"] = _extensions_section(data["extensions"], "extensions")

    try:
        return msgspec.convert(data, type=ServerConfig, strict=False)
    except msgspec.ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def merge_layers(*layers: Mapping[Any, Any] | None) -> dict[str, Any]:
    """Deep-merge configuration layers; later layers win key by key."""

    merged: dict[str, Any] = {}
    for layer in layers:
        if not layer:
            continue
        for key, value in layer.items():
            _merge_into(merged, structural_key(key), value)
    return merged


def load_config(
    path: str | os.PathLike[str] | None = None,
    *,
    overrides: Mapping[Any, Any] | None = None,
    env: Mapping[str, str] | None = None,
) -> ServerConfig:
    """Build a :class:`ServerConfig` from defaults, a document and overrides.

    When ``path`` is omitted the document named by ``HOSTYARD_CONFIG`` is used,
    if any.
    """

    environ = os.environ if env is None else env
    source = path if path is not None else environ.get(CONFIG_ENV_VAR) or None
    document: Mapping[Any, Any] | None = None
    if source:
        loaded = read_document(source)
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, Mapping):
            raise ConfigurationError(f"Configuration file '{source}' must contain a mapping")
        document = loaded
    return parse_config(merge_layers(document, overrides))


def _merge_into(target: dict[str, Any], key: str, value: Any) -> None:
    current = target.get(key)
    if isinstance(current, Mapping) and isinstance(value, Mapping):
        nested = dict(current)
        for child_key, child_value in value.items():
            _merge_into(nested, canonical_key(child_key), child_value)
        target[key] = nested
    else:
        target[key] = _normalize_tree(value)


def _normalize_tree(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {canonical_key(key): _normalize_tree(item) for key, item in value.items()}
    return value


def _protocol_section(section: str, value: Any, fields: Mapping[str, str]) -> dict[str, Any] | None:
    if value is None or value is False:
        return None
    if value is True:
        return {}
    if isinstance(value, int) or (isinstance(value, str) and value.strip().isdigit()):
        return {"port": value}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Option '{section}' must be a mapping, a port number or null")

    structured: dict[str, Any] = {}
    properties: dict[str, Any] = {}
    for raw_key, item in value.items():
        key = canonical_key(raw_key)
        target = fields.get(key)
        if target is None:
            properties[key] = item
        else:
            structured[target] = item
    structured["properties"] = properties
    return structured


def _names(value: Any, where: str) -> list[str]:
    candidates = [value] if isinstance(value, str) else value
    if not isinstance(candidates, (list, tuple)):
        raise ConfigurationError(f"{where} must be a name or a list of names")
    names = [canonical_key(candidate) for candidate in candidates]
    if any(not name for name in names):
        raise ConfigurationError(f"{where} contains an empty host name")
    return names


def _hosts_section(value: Any) -> list[dict[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, Mapping):
        raise ConfigurationError("Option 'hosts' must map entry keys to host definitions")

    entries: list[dict[str, Any]] = []
    for raw_key, item in value.items():
        key = canonical_key(raw_key)
        where = f"Host entry '{key}'"
        if isinstance(item, (str, list, tuple)):
            names = _names(item, where)
            if not names:
                raise ConfigurationError(f"{where} must name at least one host")
            entry: dict[str, Any] = {"key": key, "name": names[0], "aliases": names[1:]}
            if key != DEFAULT_HOST_KEY:
                entry["app_base"] = key
        elif isinstance(item, Mapping):
            entry = {structural_key(option): option_value for option, option_value in item.items()}
            if entry.get("aliases") is not None:
                entry["aliases"] = _names(entry["aliases"], f"{where} aliases")
            if entry.get("name") is not None:
                entry["name"] = canonical_key(entry["name"])
            entry["key"] = key
        else:
            raise ConfigurationError(f"{where} must be a name, a list of names or a mapping")
        entries.append(entry)
    return entries


def _web_apps_section(value: Any) -> list[dict[str, Any]] | None:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise ConfigurationError("Option 'web_apps' must map application names to options")

    entries: list[dict[str, Any]] = []
    for raw_name, options in value.items():
        name = canonical_key(raw_name)
        if options is None:
            options = {}
        if not isinstance(options, Mapping):
            raise ConfigurationError(f"Web application '{name}' must be configured with a mapping")
        entry = {structural_key(option): option_value for option, option_value in options.items()}
        entry.setdefault("name", name)
        if "extensions" in entry:
            entry["extensions"] = _extensions_section(entry["extensions"], f"web_apps.{name}.extensions")
        entries.append(entry)
    return entries


def _extensions_section(value: Any, where: str) -> dict[str, dict[str, Any]]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Option '{where}' must map extension names to options")

    extensions: dict[str, dict[str, Any]] = {}
    for raw_name, options in value.items():
        name = canonical_key(raw_name)
        if options is None:
            options = {}
        if not isinstance(options, Mapping):
            raise ConfigurationError(f"Options for extension '{name}' must be a mapping")
        extensions[name] = {canonical_key(key): item for key, item in options.items()}
    return extensions
