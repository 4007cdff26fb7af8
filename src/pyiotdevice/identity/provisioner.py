"""Locate-or-create workflow for the device identity."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from pyiotdevice._api.certificates import create_certificate_from_csr
from pyiotdevice._api.policies import attach_policy, list_attached_policies
from pyiotdevice._constants import BUNDLE_IDENTITY_ARN
from pyiotdevice._crypto.csr import build_csr
from pyiotdevice._crypto.pkcs12 import load_pkcs12
from pyiotdevice._transport import Transport
from pyiotdevice.config import IotConfig
from pyiotdevice.exceptions import IdentityImportError, IotApiError, IotTransportError
from pyiotdevice.identity.store import IdentityStore
from pyiotdevice.models.identity import DeviceIdentity, IdentitySource

_logger = logging.getLogger(__name__)


class IdentityProvisioner:
    """Resolve the identity to connect with.

    Order of preference:

    1. the persisted identity,
    2. the first importable credential package in the bundle directory,
    3. a new certificate issued from a CSR, with the configured policy
       attached.

    Nothing is persisted unless the chosen path completes.
    """

    def __init__(self, config: IotConfig, store: IdentityStore, transport: Transport) -> None:
        self._config = config
        self._store = store
        self._transport = transport
        self._lock = asyncio.Lock()

    async def ensure_identity(self) -> DeviceIdentity:
        """Return the identity to connect with, provisioning at most one at a time.

        Overlapping callers wait for the first one and then find its
        persisted result.
        """
        async with self._lock:
            return await self._ensure_identity_locked()

    async def _ensure_identity_locked(self) -> DeviceIdentity:
        loop = asyncio.get_running_loop()

        identity = await loop.run_in_executor(None, self._store.load)
        if identity is not None:
            _logger.debug("Using persisted identity %s", identity.identity_id)
            return identity

        _logger.info("No identity available, searching bundle...")
        identity = await loop.run_in_executor(None, self._import_from_bundle)
        if identity is not None:
            return identity

        _logger.info("No identity found in bundle, creating one...")
        return await self._issue_identity()

    # ------------------------------------------------------------------
    # Bundle import
    # ------------------------------------------------------------------

    def _bundle_candidates(self) -> list[Path]:
        if not self._config.bundle_dir:
            return []
        bundle_dir = Path(self._config.bundle_dir).expanduser()
        if not bundle_dir.is_dir():
            return []
        extension = self._config.bundle_extension.lstrip(".")
        return sorted(path for path in bundle_dir.glob(f"*.{extension}") if path.is_file())

    def _import_from_bundle(self) -> DeviceIdentity | None:
        for path in self._bundle_candidates():
            _logger.info("Found identity %s, importing...", path)
            try:
                credentials = load_pkcs12(path.read_bytes(), self._config.bundle_passphrase)
            except (OSError, IdentityImportError):
                _logger.warning("Skipping credential package %s", path, exc_info=True)
                continue

            identity = DeviceIdentity(
                identity_id=str(path),
                identity_arn=BUNDLE_IDENTITY_ARN,
                source=IdentitySource.IMPORTED,
            )
            self._store.save(
                identity,
                private_key_pem=credentials.private_key_pem,
                certificate_pem=credentials.certificate_pem,
            )
            return identity
        return None

    # ------------------------------------------------------------------
    # CSR issuance
    # ------------------------------------------------------------------

    async def _issue_identity(self) -> DeviceIdentity:
        _logger.debug("Building CSR with subject %s", self._config.csr.as_fields())
        key_and_csr = build_csr(self._config.csr)
        issued = await create_certificate_from_csr(self._transport, key_and_csr.csr_pem)
        await attach_policy(self._transport, self._config.policy_name, issued.certificate_arn)

        identity = DeviceIdentity(
            identity_id=issued.certificate_id,
            identity_arn=issued.certificate_arn,
            source=IdentitySource.ISSUED,
        )
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            lambda: self._store.save(
                identity,
                private_key_pem=key_and_csr.private_key_pem,
                certificate_pem=issued.certificate_pem,
            ),
        )

        await self._await_policy_propagation(issued.certificate_arn)
        return identity

    async def _await_policy_propagation(self, target_arn: str) -> None:
        """Give the policy service time to make a new attachment effective.

        Polls the attachment listing, then waits ``policy_settle_delay``.
        A policy that never shows up is logged, not raised: the broker will
        refuse the connection if it really is missing.
        """
        policy_name = self._config.policy_name
        visible = self._config.policy_poll_attempts == 0
        for attempt in range(1, self._config.policy_poll_attempts + 1):
            try:
                attached = await list_attached_policies(self._transport, target_arn)
            except (IotApiError, IotTransportError):
                _logger.debug("Policy listing failed (attempt %d)", attempt, exc_info=True)
                attached = []
            if any(policy.policy_name == policy_name for policy in attached):
                visible = True
                break
            if attempt < self._config.policy_poll_attempts:
                await asyncio.sleep(self._config.policy_poll_interval)

        if not visible:
            _logger.warning("Policy %s not yet visible on %s; connecting anyway", policy_name, target_arn)
        if self._config.policy_settle_delay > 0:
            await asyncio.sleep(self._config.policy_settle_delay)
