"""Device identity models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pyiotdevice._constants import CERTIFICATE_ARN_KEY, CERTIFICATE_ID_KEY
from pyiotdevice.models._base import IotBaseModel


class IdentitySource(StrEnum):
    """Where a persisted identity came from."""

    IMPORTED = "imported"
    ISSUED = "issued"


class DeviceIdentity(BaseModel):
    """Credential registration the device connects with.

    Serialised by alias so the persisted document uses the fixed
    ``certificateId`` / ``certificateArn`` keys.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    identity_id: str = Field(..., alias=CERTIFICATE_ID_KEY)
    identity_arn: str = Field(..., alias=CERTIFICATE_ARN_KEY)
    source: IdentitySource

    @field_validator("identity_id", "identity_arn")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must be non-empty")
        return value


class IssuedCertificate(IotBaseModel):
    """Response of the certificate-from-CSR endpoint.

    Parameters
    ----------
    certificate_id : str
        Identifier of the new certificate.
    certificate_arn : str
        Resource name used as the policy attachment target.
    certificate_pem : str
        The signed certificate in PEM form.
    """

    certificate_id: str
    certificate_arn: str
    certificate_pem: str


class AttachedPolicy(IotBaseModel):
    """One entry of the attached-policies listing."""

    policy_name: str
    policy_arn: str | None = None
