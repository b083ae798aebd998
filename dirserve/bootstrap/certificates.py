"""TLS material: explicit cert/key files or a cached self-signed certificate."""

import datetime
import ipaddress
import os
import time
from pathlib import Path
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from dirserve.bootstrap.config import ConfigurationError, ServerConfig
from dirserve.domain.correlation_id import get_logger

CERT_LOGGER = get_logger("certificates")

CERT_CACHE_NAME = "cached-fake-cert.pem"
CERT_VALIDITY = datetime.timedelta(days=30)
CERT_REUSE_SECONDS = 28 * 24 * 60 * 60
KEY_SIZE = 2048

SUBJECT_DNS_NAMES = ("localhost", "localhost.localdomain", "lvh.me", "*.lvh.me")
SUBJECT_IP_ADDRESSES = ("127.0.0.1", "::1")


class TlsMaterialError(ConfigurationError):
    """Raised when no usable certificate and key can be provided."""


def generate_self_signed_pem(now: Optional[datetime.datetime] = None) -> bytes:
    """Return a private key followed by a matching self-signed certificate, PEM."""
    now = now or datetime.datetime.now(datetime.timezone.utc)
    key = rsa.generate_private_key(public_exponent=65537, key_size=KEY_SIZE)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")])
    alt_names: list[x509.GeneralName] = [
        x509.DNSName(dns_name) for dns_name in SUBJECT_DNS_NAMES
    ]
    alt_names.extend(
        x509.IPAddress(ipaddress.ip_address(address))
        for address in SUBJECT_IP_ADDRESSES
    )

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=1))
        .not_valid_after(now + CERT_VALIDITY)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False
        )
        .add_extension(x509.SubjectAlternativeName(alt_names), critical=False)
        .sign(key, hashes.SHA256())
    )

    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return key_pem + cert.public_bytes(serialization.Encoding.PEM)


def _is_fresh(path: Path, now: float) -> bool:
    try:
        modified = path.stat().st_mtime
    except FileNotFoundError:
        return False
    return now - modified < CERT_REUSE_SECONDS


def cached_self_signed_certificate(
    data_dir: Path, now: Optional[float] = None
) -> Path:
    """Return the cached certificate path, regenerating it when stale or absent."""
    now = time.time() if now is None else now
    cache_path = data_dir / CERT_CACHE_NAME
    if _is_fresh(cache_path, now):
        CERT_LOGGER.debug(
            "Reusing cached certificate",
            extra={"event": "certificate_reused", "data_dir": str(data_dir)},
        )
        return cache_path

    data_dir.mkdir(parents=True, exist_ok=True)
    cache_path.write_bytes(generate_self_signed_pem())
    os.chmod(cache_path, 0o600)
    CERT_LOGGER.info(
        "Generated self-signed certificate",
        extra={"event": "certificate_generated", "data_dir": str(data_dir)},
    )
    return cache_path


def load_tls_material(config: ServerConfig) -> tuple[str, Optional[str]]:
    """Return ``(certfile, keyfile)`` for ``ssl.SSLContext.load_cert_chain``.

    A ``None`` keyfile means the key is stored in the certificate file.
    """
    if config.cert or config.key:
        if not (config.cert and config.key):
            raise TlsMaterialError("both a certificate and a key file are required")
        for path in (config.cert, config.key):
            if not Path(path).is_file():
                raise TlsMaterialError(f"TLS file not found: {path}")
        return config.cert, config.key

    if not config.data_dir:
        raise TlsMaterialError("no data directory configured for the certificate cache")
    try:
        cache_path = cached_self_signed_certificate(Path(config.data_dir))
    except OSError as error:
        raise TlsMaterialError(
            f"cannot write certificate cache in {config.data_dir}: {error}"
        ) from error
    return str(cache_path), None
