from __future__ import annotations

import pytest

from pyiotdevice.config import CsrSubject, IotConfig
from pyiotdevice.exceptions import IotConfigError


def test_from_env_reads_iot_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IOT_ENDPOINT", "broker.example.com")
    monkeypatch.setenv("IOT_CONTROL_PLANE_URL", "https://cp.example.com")
    monkeypatch.setenv("IOT_POLICY_NAME", "DevicePolicy")
    monkeypatch.setenv("IOT_PORT", "443")
    monkeypatch.setenv("IOT_POLICY_SETTLE_DELAY", "0.5")
    monkeypatch.setenv("IOT_CSR_COUNTRY_NAME", "NL")
    monkeypatch.setenv("IOT_MQTT_TRACE_ENABLED", "yes")

    config = IotConfig.from_env()

    assert config.endpoint == "broker.example.com"
    assert config.port == 443
    assert config.policy_settle_delay == 0.5
    assert config.csr.country_name == "NL"
    assert config.csr.common_name == CsrSubject().common_name
    assert config.mqtt_trace_enabled is True
    assert config.validate() is config


def test_overrides_win_over_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IOT_ENDPOINT", "env.example.com")
    monkeypatch.setenv("IOT_KEEPALIVE", "30")

    config = IotConfig.from_env(
        endpoint="override.example.com",
        keepalive=90,
        csr={"organization_name": "Acme"},
    )

    assert config.endpoint == "override.example.com"
    assert config.keepalive == 90
    assert config.csr.organization_name == "Acme"


def test_invalid_numeric_env_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IOT_PORT", "eighty")
    with pytest.raises(IotConfigError, match="IOT_PORT"):
        IotConfig.from_env()


def test_validate_reports_missing_fields() -> None:
    config = IotConfig(endpoint="", control_plane_url="https://cp.example.com", policy_name="")
    with pytest.raises(IotConfigError, match="endpoint, policy_name"):
        config.validate()


def test_validate_rejects_long_country_name() -> None:
    config = IotConfig(
        endpoint="broker.example.com",
        control_plane_url="https://cp.example.com",
        policy_name="DevicePolicy",
        csr=CsrSubject(country_name="Your Country"),
    )
    with pytest.raises(IotConfigError, match="two-letter"):
        config.validate()


def test_csr_subject_fields_use_issuance_keys() -> None:
    assert CsrSubject(common_name="lamp").as_fields()["commonName"] == "lamp"
    assert set(CsrSubject().as_fields()) == {
        "commonName",
        "countryName",
        "organizationName",
        "organizationalUnitName",
    }
