"""Certificate issuance endpoint.

Endpoint:
  - POST /certificates?setAsActive=true
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from pyiotdevice._constants import CREATE_CERTIFICATE_ENDPOINT
from pyiotdevice._transport import Transport
from pyiotdevice.exceptions import IdentityIssuanceError, IotApiError, IotTransportError
from pyiotdevice.models.identity import IssuedCertificate

_logger = logging.getLogger(__name__)


async def create_certificate_from_csr(transport: Transport, csr_pem: str) -> IssuedCertificate:
    """Submit a CSR and return the issued, active certificate.

    Raises
    ------
    IdentityIssuanceError
        If the request fails or the response lacks the certificate fields.
    """
    try:
        response = await transport.request_json(
            "POST",
            CREATE_CERTIFICATE_ENDPOINT,
            {"certificateSigningRequest": csr_pem},
            params={"setAsActive": "true"},
        )
    except IotApiError as exc:
        raise IdentityIssuanceError(
            f"Certificate issuance rejected: {exc}",
            code=exc.code,
            endpoint=CREATE_CERTIFICATE_ENDPOINT,
        ) from exc
    except IotTransportError as exc:
        raise IdentityIssuanceError(
            f"Certificate issuance failed: {exc}",
            code=str(exc.status_code or ""),
            endpoint=CREATE_CERTIFICATE_ENDPOINT,
        ) from exc

    try:
        issued = IssuedCertificate.model_validate(response)
    except ValidationError as exc:
        raise IdentityIssuanceError(
            "Certificate issuance response is missing certificate fields",
            endpoint=CREATE_CERTIFICATE_ENDPOINT,
        ) from exc

    _logger.debug("Issued certificate id=%s arn=%s", issued.certificate_id, issued.certificate_arn)
    return issued
