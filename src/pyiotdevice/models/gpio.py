"""GPIO command payloads exchanged on the sample lamp topic.

The lamp is wired active-low: ``state == 0`` drives the pin low and turns
the lamp on.
"""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pyiotdevice.exceptions import IotError

LAMP_PIN = 2
LAMP_ON_STATE = 0
LAMP_OFF_STATE = 1

# Bare identifier keys as sent by older firmware: ``{ gpio: { pin: 2 } }``.
_BARE_KEY = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)\s*:")


class GpioCommand(BaseModel):
    """Target state for a single GPIO pin."""

    model_config = ConfigDict(frozen=True)

    pin: int = Field(..., ge=0)
    state: int = Field(..., ge=0, le=1)

    @property
    def lamp_on(self) -> bool:
        return self.state == LAMP_ON_STATE

    @classmethod
    def lamp(cls, on: bool, *, pin: int = LAMP_PIN) -> GpioCommand:
        return cls(pin=pin, state=LAMP_ON_STATE if on else LAMP_OFF_STATE)

    def to_payload(self) -> str:
        """Serialise as ``{"gpio": {"pin": ..., "state": ...}}``."""
        return json.dumps({"gpio": self.model_dump()}, separators=(",", ":"))

    @classmethod
    def from_payload(cls, text: str) -> GpioCommand:
        """Parse a GPIO payload.

        Accepts well-formed JSON as well as the legacy text block with
        unquoted keys.

        Raises
        ------
        IotError
            If the payload is not a GPIO command.
        """
        try:
            document: Any = json.loads(text)
        except json.JSONDecodeError:
            try:
                document = json.loads(_BARE_KEY.sub(r'\1"\2":', text))
            except json.JSONDecodeError as exc:
                raise IotError(f"GPIO payload is not parseable: {text[:64]!r}") from exc

        if not isinstance(document, dict) or not isinstance(document.get("gpio"), dict):
            raise IotError("GPIO payload missing 'gpio' object")
        try:
            return cls.model_validate(document["gpio"])
        except ValidationError as exc:
            raise IotError(f"Invalid GPIO command: {exc}") from exc
