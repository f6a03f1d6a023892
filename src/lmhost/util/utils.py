"""Platform-aware process and filesystem probes.

Every helper here is bounded by a short timeout so a hung external query
cannot stall the caller.
"""

import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)


def _get_env_float(name: str, default: float) -> float:
    """Get a float from environment variable, with fallback to default."""
    val = os.environ.get(name)
    if val:
        try:
            return float(val)
        except ValueError:
            pass
    return default


PROBE_TIMEOUT = _get_env_float("LMHOST_PROBE_TIMEOUT", 2.0)


def run_command(
    cmd: list[str],
    cwd: Path | None = None,
    timeout: float | None = None,
    env: dict[str, str] | None = None,
) -> tuple[int, str, str]:
    """Run a command and capture its output.

    Raises ``subprocess.TimeoutExpired`` and ``OSError`` (including
    ``FileNotFoundError``) so callers can classify them.
    """
    result = subprocess.run(
        cmd,
        cwd=cwd,
        capture_output=True,
        text=True,
        timeout=timeout,
        env=env,
        stdin=subprocess.DEVNULL,
    )
    return result.returncode, result.stdout, result.stderr


def get_platform() -> str:
    """Return the platform family used to key candidate path tables."""
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform == "darwin":
        return "darwin"
    if sys.platform in ("win32", "cygwin"):
        return "win32"
    return sys.platform


def safe_home() -> Path:
    """Home directory that tolerates a missing HOME variable."""
    try:
        return Path.home()
    except RuntimeError:
        return Path(os.environ.get("USERPROFILE") or "/")


def expand_path(path: str | Path) -> Path:
    return Path(os.path.expandvars(str(path))).expanduser()


def is_executable(path: Path) -> bool:
    try:
        return path.is_file() and os.access(path, os.X_OK)
    except OSError:
        return False


def locate_executable(candidates: Iterable[str | Path]) -> Path | None:
    """Return the first candidate that exists and is executable."""
    for candidate in candidates:
        path = expand_path(candidate)
        if is_executable(path):
            return path
    return None


def is_process_running(pattern: str, exact: bool = True) -> bool:
    """Best-effort process table query. Never raises.

    With ``exact`` the process name must equal ``pattern``; otherwise any
    command line containing it matches. Windows always matches the image name.
    """
    if get_platform() == "win32":
        image = pattern if pattern.lower().endswith(".exe") else f"{pattern}.exe"
        cmd = ["tasklist", "/FI", f"IMAGENAME eq {image}", "/NH"]
    else:
        cmd = ["pgrep", "-x" if exact else "-f", pattern]

    try:
        code, stdout, _ = run_command(cmd, timeout=PROBE_TIMEOUT)
    except (OSError, subprocess.SubprocessError):
        logger.debug("Process query failed for %s", pattern, exc_info=True)
        return False

    if code != 0:
        return False
    if get_platform() == "win32":
        # tasklist exits 0 even when nothing matches
        return image.lower() in stdout.lower()
    return bool(stdout.strip())


def run_version_query(path: str | Path) -> str | None:
    """Run ``<path> --version`` and return trimmed output, or None."""
    try:
        code, stdout, stderr = run_command([str(path), "--version"], timeout=PROBE_TIMEOUT)
    except (OSError, subprocess.SubprocessError):
        logger.debug("Version query failed for %s", path, exc_info=True)
        return None
    if code != 0:
        return None
    version = stdout.strip() or stderr.strip()
    return version or None


def run_probe_command(cmd: list[str]) -> str | None:
    """Run a fallback detection command and return its first output line."""
    try:
        code, stdout, _ = run_command(cmd, timeout=PROBE_TIMEOUT)
    except (OSError, subprocess.SubprocessError):
        logger.debug("Probe command failed: %s", cmd, exc_info=True)
        return None
    if code != 0:
        return None
    lines = stdout.strip().splitlines()
    return lines[0].strip() if lines else None
