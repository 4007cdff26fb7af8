from __future__ import annotations

import pytest

from pyiotdevice._mqtt import status_from_connack
from pyiotdevice.state.events import BrokerStatus


@pytest.mark.parametrize(
    ("reason_code", "expected"),
    [
        (0x00, BrokerStatus.CONNECTED),
        (0x84, BrokerStatus.PROTOCOL_ERROR),
        (0x81, BrokerStatus.PROTOCOL_ERROR),
        (0x85, BrokerStatus.CONNECTION_REFUSED),
        (0x86, BrokerStatus.CONNECTION_REFUSED),
        (0x87, BrokerStatus.CONNECTION_REFUSED),
        (0x88, BrokerStatus.CONNECTION_REFUSED),
        (0x42, BrokerStatus.UNKNOWN),
    ],
)
def test_connack_reason_codes(reason_code: int, expected: BrokerStatus) -> None:
    assert status_from_connack(reason_code) is expected
