"""Shared fixtures for mailtriage tests."""

import os

import pytest


@pytest.fixture(autouse=True)
def _no_local_settings(monkeypatch):
    """Keep a developer's TRIAGE_* environment out of the tests."""
    for key in list(os.environ):
        if key.startswith(("TRIAGE_", "EMAIL_ACCOUNTS")):
            monkeypatch.delenv(key)
