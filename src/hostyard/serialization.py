from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol, cast

import msgspec

from .exceptions import ConfigurationError


class _DecoderModule(Protocol):
    def decode(self, data: bytes) -> Any: ...


_json = cast(_DecoderModule, getattr(msgspec, "json"))
_toml = cast(_DecoderModule, getattr(msgspec, "toml"))
_yaml = cast(_DecoderModule, getattr(msgspec, "yaml"))

_DOCUMENT_DECODERS: dict[str, _DecoderModule] = {
    ".json": _json,
    ".toml": _toml,
    ".yaml": _yaml,
    ".yml": _yaml,
}


def json_encode(value: Any) -> bytes:
    """Serialize ``value`` to JSON bytes using msgspec."""

    return msgspec.json.encode(msgspec.to_builtins(value, enc_hook=_encode_hook))


def json_decode(data: bytes) -> Any:
    """Deserialize JSON ``data`` into native Python values."""

    return _json.decode(data)


def read_document(path: str | Path) -> Any:
    """Decode a JSON, TOML or YAML configuration document."""

    resolved = Path(path)
    decoder = _DOCUMENT_DECODERS.get(resolved.suffix.lower())
    if decoder is None:
        supported = ", ".join(sorted(_DOCUMENT_DECODERS))
        raise ConfigurationError(f"Unsupported configuration format {resolved.suffix!r} (expected one of {supported})")
    try:
        data = resolved.read_bytes()
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file at '{resolved}' not found") from exc
    if not data.strip():
        return {}
    try:
        return decoder.decode(data)
    except msgspec.DecodeError as exc:
        raise ConfigurationError(f"Failed to decode configuration file '{resolved}': {exc}") from exc


def _encode_hook(value: Any) -> Any:
    if isinstance(value, Path):
        return str(value)
    raise NotImplementedError(f"Cannot serialize {type(value).__name__}")
