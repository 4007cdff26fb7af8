"""Client configuration for pyiotdevice."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyiotdevice.exceptions import IotConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class CsrSubject:
    """Subject fields used when a new identity is issued from a CSR.

    ``country_name`` must be an ISO 3166 two-letter code; the other
    fields are free text.
    """

    common_name: str = "pyiotdevice Application"
    country_name: str = "US"
    organization_name: str = "Your Organization"
    organizational_unit_name: str = "Your Organizational Unit"

    def as_fields(self) -> dict[str, str]:
        """Return the subject as the camelCase field dict of the issuance API."""
        return {
            "commonName": self.common_name,
            "countryName": self.country_name,
            "organizationName": self.organization_name,
            "organizationalUnitName": self.organizational_unit_name,
        }


@dataclasses.dataclass(frozen=True)
class IotConfig:
    """Client configuration.

    Parameters
    ----------
    endpoint : str
        MQTT broker host name (the account-specific IoT data endpoint).
    control_plane_url : str
        Base URL of the control-plane API hosting certificate issuance and
        policy management.
    policy_name : str
        Authorization policy attached to freshly issued identities.
    port : int
        MQTT over TLS port.
    api_token : str or None
        Optional bearer token sent with every control-plane request.
    topic : str
        Default topic used by the lamp helpers and the CLI.
    state_dir : str
        Directory holding the persisted identity and its key material.
    bundle_dir : str or None
        Directory scanned for bundled credential packages. ``None`` skips
        the bundle scan entirely.
    bundle_extension : str
        File extension of credential packages (without the dot).
    bundle_passphrase : str
        Passphrase of bundled packages. Empty by default.
    ca_path : str or None
        Root CA bundle used to verify the broker. ``None`` uses the system
        trust store.
    keepalive : int
        MQTT keepalive in seconds.
    clean_session : bool
        MQTT clean-session flag for every connect.
    policy_settle_delay : float
        Seconds to wait after a policy attachment becomes visible before
        the first connect attempt.
    policy_poll_attempts : int
        How many times to check that a freshly attached policy is visible.
    policy_poll_interval : float
        Seconds between policy visibility checks.
    mqtt_trace_enabled : bool
        Route paho-mqtt's internal logging through the package logger.
    csr : CsrSubject
        Subject fields for certificate signing requests.
    """

    endpoint: str
    control_plane_url: str
    policy_name: str
    port: int = 8883
    api_token: str | None = None
    topic: str = "/request"
    state_dir: str = "~/.pyiotdevice"
    bundle_dir: str | None = None
    bundle_extension: str = "p12"
    bundle_passphrase: str = ""
    ca_path: str | None = None
    keepalive: int = 60
    clean_session: bool = True
    policy_settle_delay: float = 2.0
    policy_poll_attempts: int = 5
    policy_poll_interval: float = 1.0
    mqtt_trace_enabled: bool = False
    csr: CsrSubject = dataclasses.field(default_factory=CsrSubject)

    def validate(self) -> IotConfig:
        """Check required values, returning ``self`` so calls can be chained.

        Raises
        ------
        IotConfigError
            If a required value is missing or malformed.
        """
        missing = [name for name in ("endpoint", "control_plane_url", "policy_name") if not getattr(self, name).strip()]
        if missing:
            raise IotConfigError(f"Missing required configuration: {', '.join(missing)}")
        country = self.csr.country_name.strip()
        if len(country) != 2 or not country.isalpha():
            raise IotConfigError(f"csr.country_name must be a two-letter country code, got {country!r}")
        if not 0 < self.port < 65536:
            raise IotConfigError(f"port out of range: {self.port}")
        if self.policy_poll_attempts < 0:
            raise IotConfigError("policy_poll_attempts must be >= 0")
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> IotConfig:
        """Create configuration from environment variables.

        Reads ``IOT_ENDPOINT``, ``IOT_CONTROL_PLANE_URL``, ``IOT_POLICY_NAME``
        and the optional ``IOT_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        IotConfig
            Populated configuration.
        """
        env = os.environ

        csr_kwargs: dict[str, str] = {}
        _ENV_CSR_MAP = {
            "IOT_CSR_COMMON_NAME": "common_name",
            "IOT_CSR_COUNTRY_NAME": "country_name",
            "IOT_CSR_ORGANIZATION_NAME": "organization_name",
            "IOT_CSR_ORGANIZATIONAL_UNIT_NAME": "organizational_unit_name",
        }
        for env_key, field_name in _ENV_CSR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                csr_kwargs[field_name] = val

        # Allow overriding subject fields via a nested dict
        csr_overrides = overrides.pop("csr", None)
        if isinstance(csr_overrides, dict):
            csr_kwargs.update(csr_overrides)
        elif isinstance(csr_overrides, CsrSubject):
            csr_kwargs = dataclasses.asdict(csr_overrides)

        csr = CsrSubject(**csr_kwargs) if csr_kwargs else CsrSubject()

        _ENV_CONFIG_MAP = {
            "IOT_ENDPOINT": "endpoint",
            "IOT_CONTROL_PLANE_URL": "control_plane_url",
            "IOT_POLICY_NAME": "policy_name",
            "IOT_API_TOKEN": "api_token",
            "IOT_TOPIC": "topic",
            "IOT_STATE_DIR": "state_dir",
            "IOT_BUNDLE_DIR": "bundle_dir",
            "IOT_BUNDLE_EXTENSION": "bundle_extension",
            "IOT_BUNDLE_PASSPHRASE": "bundle_passphrase",
            "IOT_CA_PATH": "ca_path",
        }
        config_kwargs: dict[str, Any] = {"csr": csr, "endpoint": "", "control_plane_url": "", "policy_name": ""}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_NUMERIC_MAP: dict[str, tuple[str, type]] = {
            "IOT_PORT": ("port", int),
            "IOT_KEEPALIVE": ("keepalive", int),
            "IOT_POLICY_SETTLE_DELAY": ("policy_settle_delay", float),
            "IOT_POLICY_POLL_ATTEMPTS": ("policy_poll_attempts", int),
            "IOT_POLICY_POLL_INTERVAL": ("policy_poll_interval", float),
        }
        for env_key, (field_name, caster) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = caster(val)
            except ValueError as exc:
                raise IotConfigError(f"{env_key} is not a valid {caster.__name__}: {val!r}") from exc

        if "mqtt_trace_enabled" not in overrides:
            config_kwargs["mqtt_trace_enabled"] = _env_bool(env.get("IOT_MQTT_TRACE_ENABLED"), False)

        if "clean_session" not in overrides:
            config_kwargs["clean_session"] = _env_bool(env.get("IOT_CLEAN_SESSION"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
