"""Policy management endpoints.

Endpoints:
  - PUT  /target-policies/{policyName}
  - POST /attached-policies/{target}
"""

from __future__ import annotations

import logging
from urllib.parse import quote

from pyiotdevice._constants import ATTACH_POLICY_ENDPOINT, LIST_ATTACHED_POLICIES_ENDPOINT
from pyiotdevice._transport import Transport
from pyiotdevice.exceptions import IotApiError, IotTransportError, PolicyAttachError
from pyiotdevice.models.identity import AttachedPolicy

_logger = logging.getLogger(__name__)


async def attach_policy(transport: Transport, policy_name: str, target_arn: str) -> None:
    """Attach *policy_name* to the identity identified by *target_arn*.

    Raises
    ------
    PolicyAttachError
        If the control plane rejects the attachment or cannot be reached.
    """
    endpoint = ATTACH_POLICY_ENDPOINT.format(policy_name=quote(policy_name, safe=""))
    try:
        await transport.request_json("PUT", endpoint, {"target": target_arn})
    except IotApiError as exc:
        raise PolicyAttachError(
            f"Attaching policy {policy_name!r} failed: {exc}",
            code=exc.code,
            endpoint=endpoint,
        ) from exc
    except IotTransportError as exc:
        raise PolicyAttachError(
            f"Attaching policy {policy_name!r} failed: {exc}",
            code=str(exc.status_code or ""),
            endpoint=endpoint,
        ) from exc
    _logger.debug("Attached policy %s to %s", policy_name, target_arn)


async def list_attached_policies(transport: Transport, target_arn: str) -> list[AttachedPolicy]:
    """Return the policies currently attached to *target_arn*."""
    endpoint = LIST_ATTACHED_POLICIES_ENDPOINT.format(target=quote(target_arn, safe=""))
    response = await transport.request_json("POST", endpoint, {})
    policies = response.get("policies")
    if not isinstance(policies, list):
        return []
    return [AttachedPolicy.model_validate(item) for item in policies if isinstance(item, dict)]
