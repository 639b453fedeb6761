from __future__ import annotations

import zipfile
from pathlib import Path
from typing import Any, Mapping

from msgspec import structs

from hostyard.connectors import ConnectorSpec
from hostyard.webapps import WebAppSpec

EXTENSION_DOC_BASE = "foo_web_app_extension"


def make_web_app(root: Path, files: Mapping[str, str] | None = None) -> Path:
    """Create a directory web application under ``root``."""

    root.mkdir(parents=True, exist_ok=True)
    for name, content in (files or {"index.html": "<h1>hello</h1>"}).items():
        target = root / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return root


def make_archive(path: Path, files: Mapping[str, str] | None = None) -> Path:
    """Create a zip packaged web application at ``path``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as bundle:
        for name, content in (files or {"index.html": "<h1>packed</h1>"}).items():
            bundle.writestr(name, content)
    return path


class DocBaseExtension:
    """Point the document base of every app at a generated artifact directory."""

    def __init__(self, target: str = EXTENSION_DOC_BASE) -> None:
        self.target = target
        self.calls: list[tuple[dict[str, Any], str]] = []

    def __call__(self, options: Mapping[str, Any], web_app: WebAppSpec) -> WebAppSpec:
        self.calls.append((dict(options), web_app.name))
        target = str(options.get("doc_base", self.target))
        return structs.replace(web_app, doc_base=str(Path(web_app.root_dir) / target))


class SuffixDetector:
    """Treat paths by suffix only, regardless of what exists on disk."""

    def is_archive(self, path: Any) -> bool:
        return str(path).endswith(".war")


class RecordingKeystore:
    def __init__(self) -> None:
        self.paths: list[str] = []

    def ensure_default_keystore(self, path: Any) -> None:
        self.paths.append(str(path))


class FailingRuntime:
    """Container runtime stand-in that refuses every connector."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error or OSError("address already in use")
        self.hosts: list[Any] = []
        self.running = False

    def create_host(self, host: Any) -> Any:
        self.hosts.append(host)
        return host

    def add_alias(self, host: Any, alias: str) -> None:
        return None

    def create_context(self, host: Any, path: str, doc_base: str) -> Any:
        return (host, path, doc_base)

    def attach_lifecycle_listener(self, target: Any, listener: Any) -> None:
        return None

    def attach_server_listener(self, listener: Any) -> None:
        return None

    def create_connector(self, spec: ConnectorSpec) -> Any:
        raise self.error

    def start(self) -> None:
        return None

    def stop(self) -> None:
        return None
