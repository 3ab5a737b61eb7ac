from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import pytest

from storefront import env
from storefront.crypto.sig import Keypair
from storefront.runtime.event_log import log_event


def test_log_event_emits_one_json_line(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("storefront.test")
    caplog.set_level(logging.INFO, logger="storefront.test")

    log_event(logger, "store_created", store=Keypair.from_label("s").pubkey, name="books")

    rec = caplog.records[-1]
    payload = json.loads(rec.getMessage())
    assert payload["event"] == "store_created"
    assert payload["name"] == "books"
    # Non-JSON values are stringified.
    assert payload["store"] == str(Keypair.from_label("s").pubkey)
    assert isinstance(payload["ts_ms"], int)


def test_log_event_level(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("storefront.test")
    caplog.set_level(logging.WARNING, logger="storefront.test")

    log_event(logger, "quiet")
    log_event(logger, "loud", level=logging.WARNING)

    assert [json.loads(r.getMessage())["event"] for r in caplog.records] == ["loud"]


def test_dotenv_loads_once_without_overriding(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    p = tmp_path / ".env"
    p.write_text("STOREFRONT_TEST_A=from_file\nSTOREFRONT_TEST_B=from_file\n", encoding="utf-8")
    monkeypatch.setattr(env, "_LOADED", False)
    monkeypatch.setenv("STOREFRONT_TEST_A", "from_env")
    monkeypatch.delenv("STOREFRONT_TEST_B", raising=False)

    assert env.load_dotenv_if_present(str(p)) is True
    assert os.environ["STOREFRONT_TEST_A"] == "from_env"
    assert os.environ["STOREFRONT_TEST_B"] == "from_file"
    monkeypatch.delenv("STOREFRONT_TEST_B")

    assert env.load_dotenv_if_present(str(p)) is False


def test_missing_dotenv_is_not_an_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(env, "_LOADED", False)
    assert env.load_dotenv_if_present(str(tmp_path / "nope.env")) is False
