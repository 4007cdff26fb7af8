"""Durable storage for the device identity and its key material.

Layout inside ``state_dir``::

    identity.json             {"certificateId", "certificateArn", "source"}
    keystore/<digest>.key.pem
    keystore/<digest>.cert.pem

Key material is written before ``identity.json`` so a persisted identity
always has its credentials next to it.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from pyiotdevice._constants import IDENTITY_FILE_NAME, KEYSTORE_DIR_NAME
from pyiotdevice._crypto.hashing import identity_digest
from pyiotdevice.models.identity import DeviceIdentity

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialPaths:
    """Files the broker client needs for mutual TLS."""

    certificate_path: Path
    private_key_path: Path

    def exist(self) -> bool:
        return self.certificate_path.is_file() and self.private_key_path.is_file()


def _write_atomic(path: Path, content: str, *, mode: int = 0o644) -> None:
    tmp = path.with_name(f".{path.name}.tmp")
    tmp.write_text(content, encoding="utf-8")
    os.chmod(tmp, mode)
    os.replace(tmp, path)


class IdentityStore:
    """File-backed store for a single :class:`DeviceIdentity`."""

    def __init__(self, state_dir: str | Path) -> None:
        self._root = Path(state_dir).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def _identity_file(self) -> Path:
        return self._root / IDENTITY_FILE_NAME

    def credential_paths(self, identity: DeviceIdentity) -> CredentialPaths:
        keystore = self._root / KEYSTORE_DIR_NAME
        digest = identity_digest(identity.identity_id)
        return CredentialPaths(
            certificate_path=keystore / f"{digest}.cert.pem",
            private_key_path=keystore / f"{digest}.key.pem",
        )

    def load(self) -> DeviceIdentity | None:
        """Return the persisted identity, or ``None`` if there is none usable."""
        path = self._identity_file
        if not path.is_file():
            return None
        try:
            identity = DeviceIdentity.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError, ValidationError):
            _logger.warning("Ignoring unreadable identity file %s", path, exc_info=True)
            return None
        if not self.credential_paths(identity).exist():
            _logger.warning("Identity %s has no key material in %s; ignoring it", identity.identity_id, self._root)
            return None
        return identity

    def save(self, identity: DeviceIdentity, *, private_key_pem: str, certificate_pem: str) -> CredentialPaths:
        """Persist *identity* together with its key material."""
        paths = self.credential_paths(identity)
        paths.certificate_path.parent.mkdir(parents=True, exist_ok=True)
        _write_atomic(paths.private_key_path, private_key_pem, mode=0o600)
        _write_atomic(paths.certificate_path, certificate_pem)
        _write_atomic(self._identity_file, identity.model_dump_json(by_alias=True, indent=2))
        _logger.info("Persisted %s identity %s", identity.source.value, identity.identity_id)
        return paths

    def clear(self) -> bool:
        """Forget the persisted identity. Returns ``True`` if one was removed."""
        path = self._identity_file
        if not path.is_file():
            return False
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
            identity: DeviceIdentity | None = DeviceIdentity.model_validate(document)
        except (OSError, json.JSONDecodeError, ValidationError):
            identity = None
        path.unlink()
        if identity is not None:
            paths = self.credential_paths(identity)
            paths.certificate_path.unlink(missing_ok=True)
            paths.private_key_path.unlink(missing_ok=True)
        _logger.info("Cleared persisted identity in %s", self._root)
        return True
