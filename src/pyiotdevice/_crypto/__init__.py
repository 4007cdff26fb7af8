"""Key, CSR and credential-package handling."""

from __future__ import annotations

from pyiotdevice._crypto.csr import KeyAndCsr, build_csr, generate_private_key, private_key_to_pem
from pyiotdevice._crypto.hashing import identity_digest
from pyiotdevice._crypto.pkcs12 import ImportedCredentials, load_pkcs12

__all__ = [
    "ImportedCredentials",
    "KeyAndCsr",
    "build_csr",
    "generate_private_key",
    "identity_digest",
    "load_pkcs12",
    "private_key_to_pem",
]
