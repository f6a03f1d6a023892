"""Install and update local providers as supervised subprocesses."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from enum import Enum

from .errors import NotInstalled, PermissionDenied
from .providers import ProviderDescriptor, ProviderSettings, describe, detect
from .utils import _get_env_float, get_platform, run_command

logger = logging.getLogger(__name__)

# Wall-clock bound for install/update subprocesses
INSTALL_TIMEOUT = _get_env_float("LMHOST_INSTALL_TIMEOUT", 300.0)

_PERMISSION_SIGNATURES = (
    "eacces",
    "permission denied",
    "operation not permitted",
    "a password is required",
    "a terminal is required",
    "must be run as root",
)


class InstallErrorKind(str, Enum):
    # Values match LMHostError.kind where a taxonomy error exists
    PERMISSION_DENIED = PermissionDenied.kind
    COMMAND_NOT_FOUND = "command_not_found"
    NOT_INSTALLED = NotInstalled.kind
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"
    GENERIC = "generic"


@dataclass
class InstallResult:
    """Structured outcome of an install or update run."""

    success: bool
    output: str = ""
    error: str | None = None
    error_kind: InstallErrorKind | None = None
    command: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "output": self.output,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "command": list(self.command),
        }


def is_permission_error(output: str, exit_code: int | None = None) -> bool:
    """Check captured output/exit status for a permission-denied signature."""
    if exit_code == 126:
        return True
    lowered = output.lower()
    return any(sig in lowered for sig in _PERMISSION_SIGNATURES)


class ProviderInstaller:
    """Runs provider install/update commands with a wall-clock timeout."""

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout if timeout is not None else INSTALL_TIMEOUT

    def build_install_command(self, descriptor: ProviderDescriptor, elevate: bool = False) -> list[str] | None:
        if not descriptor.install_command:
            return None
        return self._elevated(list(descriptor.install_command), elevate)

    def build_update_command(
        self,
        descriptor: ProviderDescriptor,
        executable: str,
        elevate: bool = False,
    ) -> list[str] | None:
        if not descriptor.update_command:
            return None
        cmd = [part.replace("{path}", executable) for part in descriptor.update_command]
        return self._elevated(cmd, elevate)

    def _elevated(self, cmd: list[str], elevate: bool) -> list[str]:
        if not elevate:
            return cmd
        if get_platform() == "win32":
            logger.warning("Elevated install is not supported on Windows; running unelevated")
            return cmd
        # -n: fail instead of prompting, since there is no terminal to answer
        return ["sudo", "-n", *cmd]

    def install(self, provider_id: str, settings: ProviderSettings | None = None) -> InstallResult:
        """Install a provider. Returns a structured result, never raises for failures."""
        settings = settings or ProviderSettings()
        descriptor = describe(provider_id)
        cmd = self.build_install_command(descriptor, settings.elevate)
        if cmd is None:
            return InstallResult(
                success=False,
                error=(
                    f"{descriptor.display_name} has no scripted installer. "
                    f"Please install it manually, then set its path in settings."
                ),
                error_kind=InstallErrorKind.UNSUPPORTED,
            )

        logger.info("Installing %s (elevate: %s): %s", descriptor.display_name, settings.elevate, " ".join(cmd))
        result = self._run(descriptor, cmd, "install", settings.elevate)
        if result.success:
            logger.info("%s installed successfully", descriptor.display_name)
        return result

    def update(self, provider_id: str, settings: ProviderSettings | None = None) -> InstallResult:
        """Update a provider. Fails fast with NOT_INSTALLED when detection finds nothing."""
        settings = settings or ProviderSettings()
        descriptor = describe(provider_id)

        state = detect(provider_id, settings)
        if not state.installed or not state.path:
            return InstallResult(
                success=False,
                error=f"{descriptor.display_name} is not installed",
                error_kind=InstallErrorKind.NOT_INSTALLED,
            )

        cmd = self.build_update_command(descriptor, state.path, settings.elevate)
        if cmd is None:
            return InstallResult(
                success=False,
                error=f"{descriptor.display_name} does not support scripted updates",
                error_kind=InstallErrorKind.UNSUPPORTED,
            )

        logger.info("Updating %s: %s", descriptor.display_name, " ".join(cmd))
        result = self._run(descriptor, cmd, "update", settings.elevate)
        if result.success:
            logger.info("%s updated successfully", descriptor.display_name)
        return result

    def _run(
        self,
        descriptor: ProviderDescriptor,
        cmd: list[str],
        action: str,
        elevated: bool,
    ) -> InstallResult:
        try:
            code, stdout, stderr = run_command(cmd, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            logger.error("%s %s timed out after %.0fs", descriptor.display_name, action, self.timeout)
            return InstallResult(
                success=False,
                error=f"{action.capitalize()} of {descriptor.display_name} timed out after {int(self.timeout)} seconds",
                error_kind=InstallErrorKind.TIMEOUT,
                command=cmd,
            )
        except FileNotFoundError as e:
            logger.error("%s %s failed to launch: %s", descriptor.display_name, action, e)
            return InstallResult(
                success=False,
                error=f"Required command '{cmd[0]}' was not found: {e}",
                error_kind=InstallErrorKind.COMMAND_NOT_FOUND,
                command=cmd,
            )
        except OSError as e:
            if is_permission_error(str(e)):
                return self._permission_denied(descriptor, cmd, str(e), elevated)
            logger.error("%s %s failed: %s", descriptor.display_name, action, e)
            return InstallResult(
                success=False,
                error=f"Failed to run {action} for {descriptor.display_name}: {e}",
                error_kind=InstallErrorKind.GENERIC,
                command=cmd,
            )

        output = "\n".join(part for part in (stdout.strip(), stderr.strip()) if part)
        if code == 0:
            return InstallResult(success=True, output=stdout.strip(), command=cmd)

        if is_permission_error(output, code):
            return self._permission_denied(descriptor, cmd, output, elevated)

        err = output or f"{cmd[0]} exited with code {code}"
        logger.error("Failed to %s %s: %s", action, descriptor.display_name, err)
        return InstallResult(
            success=False,
            output=output,
            error=f"Failed to {action} {descriptor.display_name}: {err}",
            error_kind=InstallErrorKind.GENERIC,
            command=cmd,
        )

    def _permission_denied(
        self,
        descriptor: ProviderDescriptor,
        cmd: list[str],
        output: str,
        elevated: bool,
    ) -> InstallResult:
        logger.error("Permission denied while running: %s", " ".join(cmd))
        if elevated:
            message = (
                "Permission denied even with elevation. Make sure your account can run sudo "
                "without a prompt, or install manually:\n"
                f"```\n{' '.join(descriptor.install_command or ())}\n```"
            )
        else:
            message = "Permission denied. Please try again with elevation (requires password)."
        return InstallResult(
            success=False,
            output=output,
            error=message,
            error_kind=InstallErrorKind.PERMISSION_DENIED,
            command=cmd,
        )
