from __future__ import annotations

import stat
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from hostyard.keystore import SelfSignedKeystore


def test_generate_self_signed_pair() -> None:
    certificate_pem, key_pem = SelfSignedKeystore(hostnames=("shop.local", "127.0.0.1"), key_size=2048).generate()
    certificate = x509.load_pem_x509_certificate(certificate_pem)
    key = serialization.load_pem_private_key(key_pem, password=None)
    assert certificate.subject == certificate.issuer
    names = certificate.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    assert names.get_values_for_type(x509.DNSName) == ["shop.local"]
    assert [str(ip) for ip in names.get_values_for_type(x509.IPAddress)] == ["127.0.0.1"]
    assert certificate.public_key().public_numbers() == key.public_key().public_numbers()


def test_ensure_default_keystore_writes_once(tmp_path: Path) -> None:
    directory = tmp_path / "ssl"
    keystore = SelfSignedKeystore()
    keystore.ensure_default_keystore(directory)
    certificate = directory / "server.crt"
    key = directory / "server.key"
    assert certificate.exists() and key.exists()
    assert stat.S_IMODE(key.stat().st_mode) == 0o600
    original = certificate.read_bytes()
    keystore.ensure_default_keystore(directory)
    assert certificate.read_bytes() == original
