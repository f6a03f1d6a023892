"""Tests for the provider install/update supervisor."""

import subprocess

import pytest

from lmhost.util import installer as installer_module
from lmhost.util.errors import NotInstalled, PermissionDenied, UnknownProvider
from lmhost.util.installer import (
    InstallErrorKind,
    ProviderInstaller,
    is_permission_error,
)
from lmhost.util.providers import NOT_INSTALLED, InstallationState, ProviderSettings, describe


@pytest.fixture
def recorder(monkeypatch):
    """Replace run_command with a scripted fake and record invocations."""

    class Recorder:
        def __init__(self):
            self.calls = []
            self.result = (0, "done\n", "")
            self.raises = None

        def __call__(self, cmd, **kwargs):
            self.calls.append((cmd, kwargs))
            if self.raises is not None:
                raise self.raises
            return self.result

    rec = Recorder()
    monkeypatch.setattr(installer_module, "run_command", rec)
    monkeypatch.setattr(installer_module, "get_platform", lambda: "linux")
    return rec


class TestPermissionSignatures:
    @pytest.mark.parametrize("output", [
        "npm ERR! code EACCES",
        "mkdir: /usr/local/lib: Permission denied",
        "sudo: a password is required",
        "This script must be run as root",
    ])
    def test_detected(self, output):
        assert is_permission_error(output) is True

    def test_exit_code_126(self):
        assert is_permission_error("", 126) is True

    def test_plain_failure(self):
        assert is_permission_error("network unreachable", 1) is False

    def test_kinds_match_error_taxonomy(self):
        assert InstallErrorKind.PERMISSION_DENIED.value == PermissionDenied.kind
        assert InstallErrorKind.NOT_INSTALLED.value == NotInstalled.kind


class TestInstall:
    def test_success(self, recorder):
        result = ProviderInstaller().install("claudecode")
        assert result.success is True
        assert result.error_kind is None
        assert result.output == "done"
        cmd, kwargs = recorder.calls[0]
        assert cmd == ["npm", "install", "-g", "@anthropic-ai/claude-code"]
        assert kwargs["timeout"] == ProviderInstaller().timeout

    def test_elevated_uses_noninteractive_sudo(self, recorder):
        ProviderInstaller().install("claudecode", ProviderSettings(elevate=True))
        cmd, _ = recorder.calls[0]
        assert cmd[:2] == ["sudo", "-n"]
        assert cmd[2:] == ["npm", "install", "-g", "@anthropic-ai/claude-code"]

    def test_elevation_ignored_on_windows(self, recorder, monkeypatch):
        monkeypatch.setattr(installer_module, "get_platform", lambda: "win32")
        ProviderInstaller().install("claudecode", ProviderSettings(elevate=True))
        cmd, _ = recorder.calls[0]
        assert cmd[0] == "npm"

    def test_permission_denied_without_elevation(self, recorder):
        recorder.result = (243, "", "npm ERR! code EACCES\nnpm ERR! syscall mkdir")
        result = ProviderInstaller().install("claudecode")
        assert result.success is False
        assert result.error_kind is InstallErrorKind.PERMISSION_DENIED
        assert "elevation" in result.error
        assert "EACCES" in result.output

    def test_permission_denied_with_elevation(self, recorder):
        recorder.result = (1, "", "sudo: a password is required")
        result = ProviderInstaller().install("ollama", ProviderSettings(elevate=True))
        assert result.error_kind is InstallErrorKind.PERMISSION_DENIED
        assert "even with elevation" in result.error
        assert "install.sh" in result.error

    def test_command_not_found(self, recorder):
        recorder.raises = FileNotFoundError(2, "No such file or directory", "npm")
        result = ProviderInstaller().install("claudecode")
        assert result.success is False
        assert result.error_kind is InstallErrorKind.COMMAND_NOT_FOUND
        assert "'npm'" in result.error

    def test_timeout(self, recorder):
        recorder.raises = subprocess.TimeoutExpired(["npm"], 1)
        result = ProviderInstaller(timeout=1).install("claudecode")
        assert result.success is False
        assert result.error_kind is InstallErrorKind.TIMEOUT
        assert "timed out after 1 seconds" in result.error

    def test_generic_failure_keeps_output(self, recorder):
        recorder.result = (1, "fetching...", "curl: (6) Could not resolve host")
        result = ProviderInstaller().install("ollama")
        assert result.error_kind is InstallErrorKind.GENERIC
        assert "Could not resolve host" in result.error
        assert result.output == "fetching...\ncurl: (6) Could not resolve host"

    def test_unsupported_provider(self, recorder):
        result = ProviderInstaller().install("lmstudio")
        assert result.success is False
        assert result.error_kind is InstallErrorKind.UNSUPPORTED
        assert recorder.calls == []

    def test_unknown_provider_raises(self, recorder):
        with pytest.raises(UnknownProvider):
            ProviderInstaller().install("nope")

    def test_to_dict(self, recorder):
        recorder.result = (1, "", "Permission denied")
        data = ProviderInstaller().install("claudecode").to_dict()
        assert data["error_kind"] == "permission_denied"
        assert data["command"][0] == "npm"


class TestUpdate:
    def test_not_installed_fails_fast(self, recorder, monkeypatch):
        monkeypatch.setattr(installer_module, "detect", lambda pid, settings=None: NOT_INSTALLED)
        result = ProviderInstaller().update("claudecode")
        assert result.success is False
        assert result.error_kind is InstallErrorKind.NOT_INSTALLED
        assert recorder.calls == []

    def test_update_substitutes_executable_path(self, recorder, monkeypatch):
        state = InstallationState(installed=True, path="/home/u/.claude/bin/claude", version="2.0.1")
        monkeypatch.setattr(installer_module, "detect", lambda pid, settings=None: state)
        result = ProviderInstaller().update("claudecode")
        assert result.success is True
        cmd, _ = recorder.calls[0]
        assert cmd == ["/home/u/.claude/bin/claude", "update"]

    def test_update_without_update_command(self, recorder, monkeypatch):
        state = InstallationState(installed=True, path="/usr/bin/lms")
        monkeypatch.setattr(installer_module, "detect", lambda pid, settings=None: state)
        result = ProviderInstaller().update("lmstudio")
        assert result.error_kind is InstallErrorKind.UNSUPPORTED
        assert recorder.calls == []

    def test_build_update_command_without_path_placeholder(self):
        cmd = ProviderInstaller().build_update_command(describe("ollama"), "/usr/local/bin/ollama", elevate=False)
        assert cmd == ["sh", "-c", "curl -fsSL https://ollama.com/install.sh | sh"]
