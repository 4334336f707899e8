"""
L4 Execution — Core subprocess runner.

The single place where ``subprocess.run`` is called by the installer.
It reports outcomes as a dict and never raises; callers decide what a
failure means.
"""

from __future__ import annotations

import logging
import subprocess
import time
from typing import Any

logger = logging.getLogger(__name__)

_OUTPUT_TAIL = 4000


def _run_subprocess(
    cmd: list[str],
    *,
    timeout: float = 30,
    cwd: str | None = None,
) -> dict[str, Any]:
    """Run a command with stdout and stderr merged.

    Args:
        cmd: Argument vector, no shell.
        timeout: Seconds before the process is killed.
        cwd: Working directory.

    Returns:
        ``{"ok": True, "output": "...", "exit_code": 0, "elapsed_ms": N}``
        when the process ran (any exit code), or
        ``{"ok": False, "error": "...", "output": "..."}`` when it could
        not be started or timed out.
    """
    start = time.monotonic()
    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            text=True,
            errors="replace",
            timeout=timeout,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired as e:
        partial = e.output or ""
        if isinstance(partial, bytes):
            partial = partial.decode("utf-8", errors="replace")
        return {
            "ok": False,
            "error": f"Command timed out ({timeout:g}s)",
            "output": partial[-_OUTPUT_TAIL:],
        }
    except OSError as e:
        logger.debug("Cannot start %s: %s", cmd, e)
        return {"ok": False, "error": f"Cannot run {cmd[0]}: {e}", "output": ""}

    elapsed_ms = int((time.monotonic() - start) * 1000)
    output = result.stdout or ""
    logger.debug("%s exited %d after %dms", cmd[0], result.returncode, elapsed_ms)
    return {
        "ok": True,
        "output": output[-_OUTPUT_TAIL:],
        "exit_code": result.returncode,
        "elapsed_ms": elapsed_ms,
    }
