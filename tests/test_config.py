from __future__ import annotations

import json
from enum import Enum
from pathlib import Path

import pytest

from hostyard.config import (
    CONFIG_ENV_VAR,
    DEFAULT_AJP_PORT,
    DEFAULT_HTTP_PORT,
    DEFAULT_SSL_PORT,
    HostConfig,
    absolute_path,
    canonical_key,
    load_config,
    merge_layers,
    parse_config,
    structural_key,
)
from hostyard.exceptions import ConfigurationError
from hostyard.serialization import read_document


class Option(str, Enum):
    PORT = "port"
    ADDRESS = "address"


def test_defaults() -> None:
    config = parse_config()
    assert config.port == DEFAULT_HTTP_PORT
    assert config.environment == "development"
    assert config.context_path == "/"
    assert config.http is None and config.ssl is None and config.ajp is None
    assert config.hosts == ()
    assert config.web_apps is None
    assert config.default_host_name == "localhost"


@pytest.mark.parametrize(
    ("key", "expected"),
    [
        (":port", "port"),
        ("  address ", "address"),
        (Option.PORT, "port"),
        (42, "42"),
    ],
)
def test_canonical_key(key: object, expected: str) -> None:
    assert canonical_key(key) == expected


@pytest.mark.parametrize(
    ("key", "expected"),
    [
        ("web-app-dir", "web_app_dir"),
        (":webAppDir", "web_app_dir"),
        ("unpackWARs", "unpack_archives"),
        ("unpack-wars", "unpack_archives"),
        ("appBase", "app_base"),
        ("apps-base", "apps_base"),
    ],
)
def test_structural_key(key: str, expected: str) -> None:
    assert structural_key(key) == expected


def test_symbol_and_enum_keys_normalize() -> None:
    config = parse_config({":port": 8080, Option.ADDRESS: "Example.COM", "web-app-dir": "app"})
    assert config.port == 8080
    assert config.address == "Example.COM"
    assert config.default_host_name == "example.com"
    assert config.web_app_dir == "app"
    assert config["webAppDir"] == "app"
    assert config[":port"] == 8080


def test_getitem_unknown_option() -> None:
    with pytest.raises(KeyError):
        parse_config()["nope"]


def test_unknown_option_rejected() -> None:
    with pytest.raises(ConfigurationError, match="bogus"):
        parse_config({"bogus": True})


def test_unknown_host_option_rejected() -> None:
    with pytest.raises(ConfigurationError, match="colour"):
        parse_config({"hosts": {"foo": {"colour": "blue"}}})


def test_unknown_web_app_option_rejected() -> None:
    with pytest.raises(ConfigurationError, match="flavour"):
        parse_config({"web_apps": {"shop": {"flavour": "mint"}}})


@pytest.mark.parametrize("port", [0, 70000, "http"])
def test_invalid_port_rejected(port: object) -> None:
    with pytest.raises(ConfigurationError):
        parse_config({"port": port})


@pytest.mark.parametrize(
    "section",
    [
        {"ssl": {"port": "abc"}},
        {"ajp": {"port": 0}},
        {"http": {"port": 70000}},
    ],
)
def test_invalid_protocol_port_rejected(section: dict) -> None:
    with pytest.raises(ConfigurationError, match="port"):
        parse_config(section)


def test_protocol_sections_accept_shorthands() -> None:
    config = parse_config({"http": 8081, "ssl": True, "ajp": "8010"})
    assert config.http is not None and config.http.port == 8081
    assert config.ssl is not None and config.ssl.port == DEFAULT_SSL_PORT
    assert config.ajp is not None and config.ajp.port == 8010
    assert config.http_configured and config.ssl_enabled and config.ajp_enabled


@pytest.mark.parametrize("value", [None, False])
def test_protocol_sections_disabled(value: object) -> None:
    config = parse_config({"ssl": value, "ajp": value})
    assert config.ssl is None
    assert config.ajp is None


def test_protocol_section_rejects_other_values() -> None:
    with pytest.raises(ConfigurationError, match="ajp"):
        parse_config({"ajp": ["8009"]})


def test_protocol_properties_split_from_structural_fields() -> None:
    config = parse_config(
        {
            "http": {":nio": True, "apr": True, "maxThreads": 200, "compression": "on"},
            "ssl": {
                "port": 9443,
                "SSLCertificateFile": "certs/server.pem",
                "SSLCertificateKeyFile": "certs/server.key",
                "SSLVerifyClient": "require",
            },
            "ajp": {"packetSize": 65536},
        }
    )
    assert config.http is not None
    assert config.http.nio is True
    assert config.http.apr is True
    assert config.http.properties == {"maxThreads": 200, "compression": "on"}
    assert config.ssl is not None
    assert config.ssl.port == 9443
    assert config.ssl.certificate_file == "certs/server.pem"
    assert config.ssl.certificate_key_file == "certs/server.key"
    assert config.ssl.properties == {"SSLVerifyClient": "require"}
    assert config.ajp is not None
    assert config.ajp.port == DEFAULT_AJP_PORT
    assert config.ajp.properties == {"packetSize": 65536}


def test_hosts_list_form_names_canonical_host_and_app_base() -> None:
    config = parse_config({"hosts": {"foo": ["localhost", "local"]}})
    assert config.hosts == (
        HostConfig(key="foo", name="localhost", aliases=("local",), app_base="foo"),
    )


def test_hosts_string_form_has_no_aliases() -> None:
    config = parse_config({"hosts": {"default": "example.com"}})
    (entry,) = config.hosts
    assert entry.is_default
    assert entry.name == "example.com"
    assert entry.aliases == ()
    assert entry.app_base is None


def test_hosts_map_form() -> None:
    config = parse_config(
        {"hosts": {"shop.local": {"aliases": "store.local", "appBase": "/srv/shop", "unpackWARs": False}}}
    )
    (entry,) = config.hosts
    assert entry.key == "shop.local"
    assert entry.name is None
    assert entry.aliases == ("store.local",)
    assert entry.app_base == "/srv/shop"
    assert entry.unpack_archives is False


@pytest.mark.parametrize("value", [42, {"": "x"}, ["a", ""]])
def test_hosts_invalid_values(value: object) -> None:
    with pytest.raises(ConfigurationError):
        parse_config({"hosts": {"foo": value}})


def test_web_apps_entries_keep_order_and_names() -> None:
    config = parse_config(
        {
            "web_apps": {
                "shop": {"contextPath": "/store", "host": ["Shop.Local", "shop.local"]},
                "blog": None,
            }
        }
    )
    assert config.web_apps is not None
    shop, blog = config.web_apps
    assert shop.name == "shop"
    assert shop.context_path == "/store"
    assert shop.host_refs() == ("shop.local",)
    assert blog.name == "blog"
    assert blog.host_refs() == ()


def test_web_app_empty_host_reference_rejected() -> None:
    config = parse_config({"web_apps": {"shop": {"host": " "}}})
    assert config.web_apps is not None
    with pytest.raises(ConfigurationError, match="empty host"):
        config.web_apps[0].host_refs()


def test_extensions_normalized() -> None:
    config = parse_config(
        {"extensions": {":assets": {":out": "dist"}}, "web_apps": {"shop": {"extensions": {"assets": None}}}}
    )
    assert config.extensions == {"assets": {"out": "dist"}}
    assert config.web_apps is not None
    assert config.web_apps[0].extensions == {"assets": {}}


def test_extensions_must_be_mappings() -> None:
    with pytest.raises(ConfigurationError, match="extension"):
        parse_config({"extensions": {"assets": "dist"}})


def test_base_path_and_absolute_path(tmp_path: Path) -> None:
    config = parse_config({"base_dir": "conf"})
    assert config.base_path(tmp_path) == tmp_path / "conf"
    assert parse_config().base_path(tmp_path) == tmp_path
    assert absolute_path("a/../b", tmp_path) == tmp_path / "b"
    assert absolute_path("/srv/app", tmp_path) == Path("/srv/app")


def test_merge_layers_is_deep() -> None:
    merged = merge_layers(
        {"http": {"port": 3001, "maxThreads": 10}, ":environment": "production"},
        None,
        {"http": {":port": 3002}, "environment": "staging"},
    )
    assert merged == {"http": {"port": 3002, "maxThreads": 10}, "environment": "staging"}


def test_load_config_formats_agree(tmp_path: Path) -> None:
    (tmp_path / "server.json").write_text(
        json.dumps({"port": 4000, "hosts": {"shop": ["shop.local", "store.local"]}}), encoding="utf-8"
    )
    (tmp_path / "server.toml").write_text(
        'port = 4000\n\n[hosts]\nshop = ["shop.local", "store.local"]\n', encoding="utf-8"
    )
    (tmp_path / "server.yaml").write_text(
        "port: 4000\nhosts:\n  shop:\n    - shop.local\n    - store.local\n", encoding="utf-8"
    )
    configs = [load_config(tmp_path / name) for name in ("server.json", "server.toml", "server.yaml")]
    assert configs[0] == configs[1] == configs[2]
    assert configs[0].port == 4000


def test_load_config_overrides_win(tmp_path: Path) -> None:
    path = tmp_path / "server.yaml"
    path.write_text("port: 4000\nssl:\n  port: 9443\n  SSLVerifyClient: none\n", encoding="utf-8")
    config = load_config(path, overrides={"ssl": {"port": 10443}, "address": "0.0.0.0"})
    assert config.port == 4000
    assert config.address == "0.0.0.0"
    assert config.ssl is not None
    assert config.ssl.port == 10443
    assert config.ssl.properties == {"SSLVerifyClient": "none"}


def test_load_config_from_environment(tmp_path: Path) -> None:
    path = tmp_path / "server.json"
    path.write_text('{"environment": "production"}', encoding="utf-8")
    assert load_config(env={CONFIG_ENV_VAR: str(path)}).environment == "production"
    assert load_config(env={}).environment == "development"


def test_load_config_empty_document(tmp_path: Path) -> None:
    path = tmp_path / "server.yaml"
    path.write_text("\n", encoding="utf-8")
    assert load_config(path) == parse_config()


def test_load_config_rejects_non_mapping(tmp_path: Path) -> None:
    path = tmp_path / "server.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="mapping"):
        load_config(path)


def test_read_document_errors(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="Unsupported"):
        read_document(tmp_path / "server.ini")
    with pytest.raises(ConfigurationError, match="not found"):
        read_document(tmp_path / "missing.json")
    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="decode"):
        read_document(broken)
