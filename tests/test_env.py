from __future__ import annotations

import os
from pathlib import Path

import pytest

from volumedrip import env


@pytest.fixture(autouse=True)
def _reset_loaded(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(env, "_LOADED", False)


def test_dotenv_loads_once_without_overriding(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    p = tmp_path / ".env"
    p.write_text("VOLUMEDRIP_TEST_FROM_FILE=file\nVOLUMEDRIP_TEST_KEEP=file\n", encoding="utf-8")
    monkeypatch.setenv("VOLUMEDRIP_TEST_KEEP", "process")
    monkeypatch.delenv("VOLUMEDRIP_TEST_FROM_FILE", raising=False)

    try:
        assert env.load_dotenv_if_present(str(p)) is True
        assert os.environ["VOLUMEDRIP_TEST_FROM_FILE"] == "file"
        assert os.environ["VOLUMEDRIP_TEST_KEEP"] == "process"
        assert env.load_dotenv_if_present(str(p)) is False
    finally:
        os.environ.pop("VOLUMEDRIP_TEST_FROM_FILE", None)


def test_missing_dotenv_is_not_an_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VOLUMEDRIP_DOTENV_PATH", str(tmp_path / "nope.env"))
    assert env.load_dotenv_if_present() is False
