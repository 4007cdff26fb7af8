"""PKCS#12 credential-package import."""

from __future__ import annotations

from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from pyiotdevice.exceptions import IdentityImportError


@dataclass(frozen=True)
class ImportedCredentials:
    private_key_pem: str
    certificate_pem: str


def load_pkcs12(data: bytes, passphrase: str = "") -> ImportedCredentials:
    """Extract the key and leaf certificate from a PKCS#12 package.

    An empty *passphrase* means the package is not encrypted.

    Raises
    ------
    IdentityImportError
        If the package cannot be decoded or lacks a key or certificate.
    """
    password = passphrase.encode("utf-8") if passphrase else None
    try:
        key, certificate, _additional = pkcs12.load_key_and_certificates(data, password)
    except (TypeError, ValueError) as exc:
        raise IdentityImportError(f"Unable to decode PKCS#12 package: {exc}") from exc

    if key is None or certificate is None:
        raise IdentityImportError("PKCS#12 package must contain a private key and a certificate")

    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    cert_pem = certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")
    return ImportedCredentials(private_key_pem=key_pem, certificate_pem=cert_pem)
