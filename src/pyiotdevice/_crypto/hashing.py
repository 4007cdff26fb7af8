"""Hash helpers for keystore naming."""

from __future__ import annotations

import hashlib


def identity_digest(identity_id: str) -> str:
    """Stable, filesystem-safe name for an identity's key material.

    Identity ids can be certificate ids or bundle file paths, so they are
    hashed rather than used as file names directly.

    Parameters
    ----------
    identity_id : str
        The persisted identity id.

    Returns
    -------
    str
        32-character lowercase hex prefix of the SHA-256 digest.
    """
    return hashlib.sha256(identity_id.encode("utf-8")).hexdigest()[:32]
