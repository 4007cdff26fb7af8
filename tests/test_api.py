from __future__ import annotations

from typing import Any

import pytest

from pyiotdevice._api.certificates import create_certificate_from_csr
from pyiotdevice._api.policies import attach_policy, list_attached_policies
from pyiotdevice.exceptions import IdentityIssuanceError, IotApiError, IotTransportError, PolicyAttachError


class _StaticTransport:
    def __init__(self, response: dict[str, Any] | None = None, error: Exception | None = None) -> None:
        self.response = response or {}
        self.error = error
        self.requests: list[tuple[str, str, Any]] = []

    async def request_json(
        self,
        method: str,
        endpoint: str,
        payload: Any = None,
        *,
        params: Any = None,
    ) -> dict[str, Any]:
        self.requests.append((method, endpoint, payload))
        if self.error is not None:
            raise self.error
        return self.response


@pytest.mark.asyncio
async def test_issued_certificate_is_parsed() -> None:
    transport = _StaticTransport(
        {"certificateId": "abc", "certificateArn": "arn:cert/abc", "certificatePem": "pem", "extra": 1}
    )

    issued = await create_certificate_from_csr(transport, "csr")

    assert issued.certificate_id == "abc"
    assert issued.certificate_arn == "arn:cert/abc"
    assert transport.requests == [("POST", "/certificates", {"certificateSigningRequest": "csr"})]


@pytest.mark.asyncio
async def test_issuance_without_certificate_fields_fails() -> None:
    with pytest.raises(IdentityIssuanceError):
        await create_certificate_from_csr(_StaticTransport({"certificateId": "abc"}), "csr")


@pytest.mark.asyncio
async def test_issuance_api_error_keeps_code() -> None:
    transport = _StaticTransport(error=IotApiError("throttled", code="ThrottlingException"))

    with pytest.raises(IdentityIssuanceError) as excinfo:
        await create_certificate_from_csr(transport, "csr")

    assert excinfo.value.code == "ThrottlingException"
    assert excinfo.value.endpoint == "/certificates"


@pytest.mark.asyncio
async def test_attach_transport_error_becomes_policy_error() -> None:
    transport = _StaticTransport(error=IotTransportError("down", status_code=503))

    with pytest.raises(PolicyAttachError) as excinfo:
        await attach_policy(transport, "Device Policy", "arn:cert/abc")

    assert excinfo.value.code == "503"
    assert transport.requests[0][1] == "/target-policies/Device%20Policy"


@pytest.mark.asyncio
async def test_list_attached_policies_tolerates_missing_list() -> None:
    assert await list_attached_policies(_StaticTransport({}), "arn:cert/abc") == []


@pytest.mark.asyncio
async def test_list_attached_policies_quotes_target() -> None:
    transport = _StaticTransport({"policies": [{"policyName": "P", "policyArn": "arn:policy/P"}]})

    policies = await list_attached_policies(transport, "arn:cert/abc")

    assert [policy.policy_name for policy in policies] == ["P"]
    assert transport.requests[0][1] == "/attached-policies/arn%3Acert%2Fabc"
