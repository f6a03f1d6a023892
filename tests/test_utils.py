"""Tests for platform probe helpers."""

import subprocess

from lmhost.util import utils
from lmhost.util.utils import (
    _get_env_float,
    is_process_running,
    locate_executable,
    run_probe_command,
    run_version_query,
)


class TestGetEnvFloat:
    def test_default_when_unset(self, monkeypatch):
        monkeypatch.delenv("LMHOST_TEST_FLOAT", raising=False)
        assert _get_env_float("LMHOST_TEST_FLOAT", 2.5) == 2.5

    def test_parses_value(self, monkeypatch):
        monkeypatch.setenv("LMHOST_TEST_FLOAT", "7.25")
        assert _get_env_float("LMHOST_TEST_FLOAT", 2.5) == 7.25

    def test_garbage_falls_back(self, monkeypatch):
        monkeypatch.setenv("LMHOST_TEST_FLOAT", "soon")
        assert _get_env_float("LMHOST_TEST_FLOAT", 2.5) == 2.5


class TestLocateExecutable:
    def test_first_executable_candidate_wins(self, tmp_path):
        missing = tmp_path / "missing"
        not_exec = tmp_path / "plain"
        not_exec.write_text("")
        not_exec.chmod(0o644)
        good = tmp_path / "tool"
        good.write_text("#!/bin/sh\n")
        good.chmod(0o755)

        assert locate_executable([missing, not_exec, good]) == good

    def test_none_when_nothing_matches(self, tmp_path):
        assert locate_executable([tmp_path / "a", tmp_path / "b"]) is None

    def test_expands_home(self, fake_home):
        tool = fake_home / "bin" / "tool"
        tool.parent.mkdir()
        tool.write_text("")
        tool.chmod(0o755)
        assert locate_executable(["~/bin/tool"]) == tool


class TestProcessQueries:
    def test_running_when_pgrep_matches(self, monkeypatch):
        monkeypatch.setattr(utils, "get_platform", lambda: "linux")
        monkeypatch.setattr(utils, "run_command", lambda cmd, **kw: (0, "1234\n", ""))
        assert is_process_running("ollama") is True

    def test_not_running_when_pgrep_fails(self, monkeypatch):
        monkeypatch.setattr(utils, "get_platform", lambda: "linux")
        monkeypatch.setattr(utils, "run_command", lambda cmd, **kw: (1, "", ""))
        assert is_process_running("ollama") is False

    def test_exact_name_match_by_default(self, monkeypatch):
        monkeypatch.setattr(utils, "get_platform", lambda: "linux")
        seen = []
        monkeypatch.setattr(utils, "run_command", lambda cmd, **kw: seen.append(cmd) or (1, "", ""))
        is_process_running("ollama")
        is_process_running("lm-studio", exact=False)
        assert seen == [["pgrep", "-x", "ollama"], ["pgrep", "-f", "lm-studio"]]

    def test_windows_tasklist_no_match(self, monkeypatch):
        """tasklist exits 0 with an INFO line when nothing matches."""
        monkeypatch.setattr(utils, "get_platform", lambda: "win32")
        seen = {}

        def fake_run(cmd, **kw):
            seen["cmd"] = cmd
            return 0, "INFO: No tasks are running which match the specified criteria.", ""

        monkeypatch.setattr(utils, "run_command", fake_run)
        assert is_process_running("ollama") is False
        assert seen["cmd"][0] == "tasklist"
        assert "IMAGENAME eq ollama.exe" in seen["cmd"]

    def test_query_errors_are_swallowed(self, monkeypatch):
        monkeypatch.setattr(utils, "get_platform", lambda: "linux")

        def boom(cmd, **kw):
            raise FileNotFoundError("pgrep")

        monkeypatch.setattr(utils, "run_command", boom)
        assert is_process_running("ollama") is False


class TestVersionQuery:
    def test_trimmed_stdout(self, monkeypatch):
        monkeypatch.setattr(utils, "run_command", lambda cmd, **kw: (0, "  ollama version 0.5.1\n", ""))
        assert run_version_query("/usr/bin/ollama") == "ollama version 0.5.1"

    def test_falls_back_to_stderr(self, monkeypatch):
        monkeypatch.setattr(utils, "run_command", lambda cmd, **kw: (0, "", "1.2.3\n"))
        assert run_version_query("/usr/bin/tool") == "1.2.3"

    def test_timeout_returns_none(self, monkeypatch):
        def slow(cmd, **kw):
            raise subprocess.TimeoutExpired(cmd, 2)

        monkeypatch.setattr(utils, "run_command", slow)
        assert run_version_query("/usr/bin/tool") is None

    def test_nonzero_exit_returns_none(self, monkeypatch):
        monkeypatch.setattr(utils, "run_command", lambda cmd, **kw: (2, "oops", ""))
        assert run_version_query("/usr/bin/tool") is None


class TestProbeCommand:
    def test_first_line(self, monkeypatch):
        monkeypatch.setattr(utils, "run_command", lambda cmd, **kw: (0, "/usr/bin/lms\n/opt/lms\n", ""))
        assert run_probe_command(["which", "lms"]) == "/usr/bin/lms"

    def test_empty_output(self, monkeypatch):
        monkeypatch.setattr(utils, "run_command", lambda cmd, **kw: (0, "\n", ""))
        assert run_probe_command(["which", "lms"]) is None
