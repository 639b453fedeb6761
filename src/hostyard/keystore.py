"""Default TLS material for HTTPS connectors without a configured certificate."""

from __future__ import annotations

import datetime
import ipaddress
import logging
import os
from pathlib import Path
from typing import Iterable, Protocol

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from .connectors import CERTIFICATE_FILE_NAME, PRIVATE_KEY_FILE_NAME

logger = logging.getLogger(__name__)


class KeystoreGenerator(Protocol):
    def ensure_default_keystore(self, path: str | os.PathLike[str]) -> None: ...


class SelfSignedKeystore:
    """Write a self-signed ``server.crt``/``server.key`` pair when none exists yet."""

    def __init__(
        self,
        *,
        hostnames: Iterable[str] = ("localhost", "127.0.0.1"),
        organization: str = "hostyard",
        valid_days: int = 365,
        key_size: int = 2048,
    ) -> None:
        self.hostnames = tuple(hostnames)
        self.organization = organization
        self.valid_days = valid_days
        self.key_size = key_size

    def ensure_default_keystore(self, path: str | os.PathLike[str]) -> None:
        directory = Path(path)
        certificate_path = directory / CERTIFICATE_FILE_NAME
        key_path = directory / PRIVATE_KEY_FILE_NAME
        if certificate_path.exists() and key_path.exists():
            return
        directory.mkdir(parents=True, exist_ok=True)
        certificate, key = self.generate()
        key_path.write_bytes(key)
        os.chmod(key_path, 0o600)
        certificate_path.write_bytes(certificate)
        logger.info("generated self-signed certificate in %s", directory)

    def generate(self) -> tuple[bytes, bytes]:
        """Return PEM encoded ``(certificate, private_key)`` bytes."""

        key = rsa.generate_private_key(public_exponent=65537, key_size=self.key_size)
        common_name = self.hostnames[0] if self.hostnames else "localhost"
        subject = issuer = x509.Name(
            [
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, self.organization),
                x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            ]
        )
        alternative_names: list[x509.GeneralName] = []
        for name in self.hostnames:
            try:
                alternative_names.append(x509.IPAddress(ipaddress.ip_address(name)))
            except ValueError:
                alternative_names.append(x509.DNSName(name))
        now = datetime.datetime.now(datetime.timezone.utc)
        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(minutes=5))
            .not_valid_after(now + datetime.timedelta(days=self.valid_days))
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        )
        if alternative_names:
            builder = builder.add_extension(x509.SubjectAlternativeName(alternative_names), critical=False)
        certificate = builder.sign(private_key=key, algorithm=hashes.SHA256())
        certificate_pem = certificate.public_bytes(serialization.Encoding.PEM)
        key_pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return certificate_pem, key_pem
