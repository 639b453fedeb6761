from __future__ import annotations

from pathlib import Path

import pytest

from hostyard.config import parse_config
from hostyard.connectors import (
    AJP_PROTOCOL_NAME,
    HTTP_PROTOCOL_NAME,
    ConnectorProtocol,
    build_connectors,
    native_library_requested,
    protocol_properties,
)


def _build(raw: dict, tmp_path: Path):
    config = parse_config(raw)
    return build_connectors(
        config.http, config.ssl, config.ajp, config.address, port=config.port, base_dir=tmp_path
    )


@pytest.mark.parametrize(
    ("raw", "protocols"),
    [
        ({}, [ConnectorProtocol.HTTP]),
        ({"ssl": None, "ajp": None}, [ConnectorProtocol.HTTP]),
        ({"ssl": {"port": 8443}}, [ConnectorProtocol.HTTP, ConnectorProtocol.HTTPS]),
        ({"ajp": {}}, [ConnectorProtocol.HTTP, ConnectorProtocol.AJP]),
        (
            {"ajp": True, "ssl": True, "http": {"port": 8080}},
            [ConnectorProtocol.HTTP, ConnectorProtocol.HTTPS, ConnectorProtocol.AJP],
        ),
    ],
)
def test_exactly_one_http_connector(raw: dict, protocols: list[ConnectorProtocol], tmp_path: Path) -> None:
    connectors = _build(raw, tmp_path)
    assert [connector.protocol for connector in connectors] == protocols


def test_http_connector_defaults(tmp_path: Path) -> None:
    (http,) = _build({"address": "10.0.0.5", "port": 4000}, tmp_path)
    assert http.port == 4000
    assert http.address == "10.0.0.5"
    assert http.scheme == "http"
    assert http.secure is False
    assert http.protocol_name == HTTP_PROTOCOL_NAME
    assert http.nio is False
    assert http.keystore is None


def test_http_section_port_and_properties(tmp_path: Path) -> None:
    (http,) = _build(
        {"port": 4000, "http": {"port": 8080, "nio": True, "maxThreads": 150, "compression": "on", "secure": False}},
        tmp_path,
    )
    assert http.port == 8080
    assert http.nio is True
    assert http.properties == {"maxThreads": 150, "compression": "on", "secure": "false"}


def test_protocol_properties_coercion() -> None:
    properties = protocol_properties({"a": 1, "b": 1.5, "c": True, "d": None, "e": ["x"], "f": "text"})
    assert properties == {"a": 1, "b": 1.5, "c": "true", "d": "None", "e": "['x']", "f": "text"}


def test_ssl_without_certificate_generates_keystore(tmp_path: Path) -> None:
    _, https = _build({"ssl": {"port": 9443}}, tmp_path)
    assert https.protocol is ConnectorProtocol.HTTPS
    assert https.scheme == "https"
    assert https.secure is True
    assert https.port == 9443
    assert https.generates_keystore
    assert https.keystore == str(tmp_path / "ssl")
    assert https.certificate_file == str(tmp_path / "ssl" / "server.crt")
    assert https.certificate_key_file == str(tmp_path / "ssl" / "server.key")


def test_ssl_custom_keystore_directory(tmp_path: Path) -> None:
    _, https = _build({"ssl": {"keystore": "tls"}}, tmp_path)
    assert https.keystore == str(tmp_path / "tls")


def test_ssl_with_certificate_skips_keystore(tmp_path: Path) -> None:
    _, https = _build(
        {
            "address": "127.0.0.1",
            "ssl": {
                "SSLCertificateFile": "certs/server.pem",
                "SSLCertificateKeyFile": "/etc/tls/server.key",
                "SSLVerifyClient": "require",
            },
        },
        tmp_path,
    )
    assert not https.generates_keystore
    assert https.keystore is None
    assert https.port == 8443
    assert https.address == "127.0.0.1"
    assert https.certificate_file == str(tmp_path / "certs" / "server.pem")
    assert https.certificate_key_file == "/etc/tls/server.key"
    assert https.properties == {"SSLVerifyClient": "require"}


def test_ajp_connector(tmp_path: Path) -> None:
    _, ajp = _build({"ajp": {"address": "127.0.0.1", "packetSize": 65536}}, tmp_path)
    assert ajp.port == 8009
    assert ajp.address == "127.0.0.1"
    assert ajp.protocol_name == AJP_PROTOCOL_NAME
    assert ajp.properties == {"packetSize": 65536}


def test_native_library_requested() -> None:
    assert native_library_requested(parse_config({"http": {"apr": True}}).http)
    assert not native_library_requested(parse_config({"http": {}}).http)
    assert not native_library_requested(None)
