# Shared fixtures for the chat engine tests.
# Created: 2026-03-06

import pytest

from chatdesk.config import Settings
from chatdesk.history import HistoryKeeper
from chatdesk.lifecycle import reset_all

from fakes import FakeCompletionAPI, FakeConversationAPI


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config directory at a temp dir and reset singletons."""
    monkeypatch.setenv("CHATDESK_CONFIG_DIR", str(tmp_path / "config"))
    reset_all()
    yield
    reset_all()


@pytest.fixture
def settings():
    """Settings with title generation turned off."""
    return Settings(in_memory=False, title_min_history=100, title_max_history=100)


@pytest.fixture
def keeper(tmp_path):
    return HistoryKeeper(tmp_path / "history")


@pytest.fixture
def completion_api():
    return FakeCompletionAPI()


@pytest.fixture
def conversation_api():
    return FakeConversationAPI()
