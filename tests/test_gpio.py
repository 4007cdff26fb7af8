from __future__ import annotations

import json

import pytest

from pyiotdevice.exceptions import IotError
from pyiotdevice.models.gpio import GpioCommand


def test_lamp_on_drives_pin_low() -> None:
    command = GpioCommand.lamp(True)

    assert command.pin == 2
    assert command.state == 0
    assert command.lamp_on
    assert json.loads(command.to_payload()) == {"gpio": {"pin": 2, "state": 0}}


def test_lamp_off() -> None:
    assert GpioCommand.lamp(False).to_payload() == '{"gpio":{"pin":2,"state":1}}'


def test_parses_legacy_unquoted_keys() -> None:
    command = GpioCommand.from_payload("{ gpio: { pin: 2, state: 0 } }")

    assert command == GpioCommand(pin=2, state=0)
    assert command.lamp_on


@pytest.mark.parametrize(
    "payload",
    [
        "lamp please",
        '{"pin": 2, "state": 0}',
        '{"gpio": {"pin": 2, "state": 7}}',
        '{"gpio": {"pin": -1, "state": 0}}',
        "[1, 2]",
    ],
)
def test_rejects_invalid_payloads(payload: str) -> None:
    with pytest.raises(IotError):
        GpioCommand.from_payload(payload)
