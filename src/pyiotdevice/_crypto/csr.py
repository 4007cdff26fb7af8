"""Private key and certificate-signing-request generation."""

from __future__ import annotations

from dataclasses import dataclass

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from pyiotdevice.config import CsrSubject
from pyiotdevice.exceptions import IotCryptoError


@dataclass(frozen=True)
class KeyAndCsr:
    """A new key pair and the PEM encoded CSR signed with it."""

    private_key_pem: str
    csr_pem: str


def generate_private_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


def private_key_to_pem(private_key: ec.EllipticCurvePrivateKey) -> str:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


def _subject_name(subject: CsrSubject) -> x509.Name:
    return x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, subject.common_name),
            x509.NameAttribute(NameOID.COUNTRY_NAME, subject.country_name),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, subject.organization_name),
            x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, subject.organizational_unit_name),
        ]
    )


def build_csr(subject: CsrSubject, private_key: ec.EllipticCurvePrivateKey | None = None) -> KeyAndCsr:
    """Build a SHA-256 signed CSR for *subject*.

    A new P-256 key is generated unless *private_key* is given.

    Raises
    ------
    IotCryptoError
        If the subject is rejected (e.g. a country name that is not two
        characters long).
    """
    key = private_key or generate_private_key()
    try:
        csr = x509.CertificateSigningRequestBuilder().subject_name(_subject_name(subject)).sign(key, hashes.SHA256())
    except ValueError as exc:
        raise IotCryptoError(f"Invalid CSR subject: {exc}") from exc
    return KeyAndCsr(
        private_key_pem=private_key_to_pem(key),
        csr_pem=csr.public_bytes(serialization.Encoding.PEM).decode("ascii"),
    )
