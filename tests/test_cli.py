from __future__ import annotations

import os
from pathlib import Path

import pytest

from pyiotdevice.cli import main


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("IOT_"):
            monkeypatch.delenv(key)


def test_ensure_without_configuration_exits_with_error(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["identity", "ensure"]) == 2
    assert "Missing required configuration" in capsys.readouterr().err


def test_show_without_identity(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setenv("IOT_STATE_DIR", str(tmp_path))

    assert main(["identity", "show"]) == 0
    assert "No identity persisted" in capsys.readouterr().out


def test_clear_without_identity(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setenv("IOT_STATE_DIR", str(tmp_path))

    assert main(["identity", "clear"]) == 0
    assert "No identity to clear" in capsys.readouterr().out


def test_rejects_unknown_command() -> None:
    with pytest.raises(SystemExit):
        main(["reboot"])
