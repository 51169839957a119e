from __future__ import annotations

import os

import pytest


@pytest.fixture(autouse=True)
def _isolate_relay_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep a developer's shell or .env from leaking into config tests.
    for key in list(os.environ):
        if key.startswith("TOPICRELAY_"):
            monkeypatch.delenv(key, raising=False)
