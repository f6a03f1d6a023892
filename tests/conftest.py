from __future__ import annotations

import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"

# Force this tree's src to the front of sys.path so imports use it,
# not an installed copy.
SRC_STR = str(SRC_PATH)
sys.path = [SRC_STR] + [p for p in sys.path if p != SRC_STR]


@pytest.fixture(autouse=True)
def _isolate_state(tmp_path_factory, monkeypatch):
    """Keep config isolated and global singletons fresh per test."""
    from lmhost.server.services import reset_event_bridge, reset_session_manager
    from lmhost.server.state import reset_state

    config_dir = tmp_path_factory.mktemp("config")
    monkeypatch.setenv("LMHOST_CONFIG", str(config_dir / "lmhost.conf"))
    for var in ("CLAUDE_CODE_PORT", "OLLAMA_HOST", "LM_STUDIO_BASE_URL"):
        monkeypatch.delenv(var, raising=False)

    reset_state()
    reset_session_manager()
    reset_event_bridge()
    yield
    reset_state()
    reset_session_manager()
    reset_event_bridge()


@pytest.fixture
def fake_home(tmp_path, monkeypatch):
    """Point ~ at a temporary directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home
