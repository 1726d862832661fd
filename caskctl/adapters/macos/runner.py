"""
Subprocess runner for platform installer commands.

The single place where ``subprocess.run`` is called for install and
uninstall operations.  Sudo handling, logging and error capture live
here.

Sudo rules:
- Password piped via stdin only (``sudo -S``)
- ``-k`` invalidates cached credentials every time
- Password never logged and never part of the command line
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from typing import Any

logger = logging.getLogger(__name__)

OUTPUT_TAIL = 2000


def _is_root() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


def run_command(
    cmd: list[str],
    *,
    needs_sudo: bool = False,
    sudo_password: str = "",
    timeout: int = 300,
    cwd: str | None = None,
) -> dict[str, Any]:
    """Run one command.

    Args:
        cmd: Command list for ``subprocess.run()``.
        needs_sudo: Whether the command requires root.
        sudo_password: Piped to ``sudo -S`` when not already root.
        timeout: Seconds before giving up.
        cwd: Working directory.

    Returns:
        ``{"ok": True, "returncode": 0, "stdout": "...", "stderr": "...",
        "elapsed_ms": N}`` on success, ``{"ok": False, "error": "...", ...}``
        on failure.
    """
    stdin_data = None
    if needs_sudo and not _is_root():
        if sudo_password:
            cmd = ["sudo", "-S", "-k", *cmd]
            stdin_data = sudo_password + "\n"
        else:
            # -n: fail rather than prompt on a terminal
            cmd = ["sudo", "-n", *cmd]

    logger.debug("Running: %s", " ".join(cmd))
    start = time.monotonic()
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            input=stdin_data,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired:
        return {"ok": False, "returncode": None, "error": f"Command timed out ({timeout}s)"}
    except OSError as e:
        logger.error("Cannot run %s: %s", cmd[0], e)
        return {"ok": False, "returncode": None, "error": str(e)}

    elapsed_ms = int((time.monotonic() - start) * 1000)
    stdout = result.stdout or ""
    stderr = (result.stderr or "")[-OUTPUT_TAIL:]

    if result.returncode == 0:
        return {
            "ok": True,
            "returncode": 0,
            "stdout": stdout,
            "stderr": stderr,
            "elapsed_ms": elapsed_ms,
        }

    if needs_sudo and ("incorrect password" in stderr.lower() or "a password is required" in stderr.lower()):
        return {
            "ok": False,
            "returncode": result.returncode,
            "needs_sudo": True,
            "error": "sudo authentication failed",
            "stderr": stderr,
        }

    return {
        "ok": False,
        "returncode": result.returncode,
        "error": f"Command failed (exit {result.returncode})",
        "stdout": stdout[-OUTPUT_TAIL:],
        "stderr": stderr,
        "elapsed_ms": elapsed_ms,
    }
