"""Listener specifications derived from the ``http``, ``ssl`` and ``ajp`` sections."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from msgspec import Struct, field

from .config import DEFAULT_HTTP_PORT, AjpConfig, HttpConfig, SslConfig, absolute_path

logger = logging.getLogger(__name__)

HTTP_PROTOCOL_NAME = "HTTP/1.1"
AJP_PROTOCOL_NAME = "AJP/1.3"
DEFAULT_KEYSTORE_DIR = "ssl"
CERTIFICATE_FILE_NAME = "server.crt"
PRIVATE_KEY_FILE_NAME = "server.key"


class ConnectorProtocol(str, Enum):
    """Protocol families a connector can speak."""

    HTTP = "http"
    HTTPS = "https"
    AJP = "ajp"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


class ConnectorSpec(Struct, frozen=True, kw_only=True):
    """Description of one network listener, handed verbatim to the runtime."""

    protocol: ConnectorProtocol
    port: int
    address: str | None = None
    nio: bool = False
    properties: dict[str, int | float | str] = field(default_factory=dict)
    certificate_file: str | None = None
    certificate_key_file: str | None = None
    keystore: str | None = None

    @property
    def scheme(self) -> str:
        return "https" if self.protocol is ConnectorProtocol.HTTPS else "http"

    @property
    def secure(self) -> bool:
        return self.protocol is ConnectorProtocol.HTTPS

    @property
    def protocol_name(self) -> str:
        if self.protocol is ConnectorProtocol.AJP:
            return AJP_PROTOCOL_NAME
        return HTTP_PROTOCOL_NAME

    @property
    def generates_keystore(self) -> bool:
        """Whether a default keystore must exist before this listener starts."""

        return self.keystore is not None


def protocol_properties(raw: Mapping[str, Any]) -> dict[str, int | float | str]:
    """Coerce pass-through listener properties: numbers stay numbers, the rest become strings."""

    properties: dict[str, int | float | str] = {}
    for key, value in raw.items():
        if isinstance(value, bool):
            properties[key] = "true" if value else "false"
        elif isinstance(value, (int, float)):
            properties[key] = value
        else:
            properties[key] = str(value)
    return properties


def native_library_requested(http: HttpConfig | None) -> bool:
    return http is not None and http.apr


def build_connectors(
    http: HttpConfig | None,
    ssl: SslConfig | None,
    ajp: AjpConfig | None,
    address: str | None = None,
    *,
    port: int = DEFAULT_HTTP_PORT,
    base_dir: Path | None = None,
) -> tuple[ConnectorSpec, ...]:
    """Return the connectors to create, HTTP first, then HTTPS and AJP when enabled."""

    base = base_dir or Path.cwd()
    http_config = http or HttpConfig()
    connectors = [
        ConnectorSpec(
            protocol=ConnectorProtocol.HTTP,
            port=http_config.port or port,
            address=http_config.address or address,
            nio=http_config.nio,
            properties=protocol_properties(http_config.properties),
        )
    ]
    if ssl is not None:
        connectors.append(_ssl_connector(ssl, address, base))
    if ajp is not None:
        connectors.append(
            ConnectorSpec(
                protocol=ConnectorProtocol.AJP,
                port=ajp.port,
                address=ajp.address or address,
                properties=protocol_properties(ajp.properties),
            )
        )
    for connector in connectors:
        logger.debug("connector %s on %s:%s", connector.protocol, connector.address or "*", connector.port)
    return tuple(connectors)


def _ssl_connector(ssl: SslConfig, address: str | None, base: Path) -> ConnectorSpec:
    keystore: str | None = None
    if ssl.certificate_file:
        certificate = str(absolute_path(ssl.certificate_file, base))
        key = str(absolute_path(ssl.certificate_key_file, base)) if ssl.certificate_key_file else None
    else:
        directory = absolute_path(ssl.keystore or DEFAULT_KEYSTORE_DIR, base)
        keystore = str(directory)
        certificate = str(directory / CERTIFICATE_FILE_NAME)
        key = str(directory / PRIVATE_KEY_FILE_NAME)
    return ConnectorSpec(
        protocol=ConnectorProtocol.HTTPS,
        port=ssl.port,
        address=ssl.address or address,
        nio=ssl.nio,
        properties=protocol_properties(ssl.properties),
        certificate_file=certificate,
        certificate_key_file=key,
        keystore=keystore,
    )
