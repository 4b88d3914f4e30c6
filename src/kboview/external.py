"""Subprocess helpers for the ``kbo`` command-line tool.

Commands are run to completion with stdout and stderr captured; kbo writes
its results to stdout, so callers read ``CompletedProcess.stdout``. A failing
command raises :class:`ExternalCommandError` carrying the tail of stderr.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
import time
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

KBO_INSTALL_HINT = (
    "Install the kbo command-line tool:\n"
    "  cargo install kbo-cli\n"
    "or download a release binary from https://github.com/tmaklin/kbo-cli/releases"
)

STDERR_TAIL_CHARS = 3000


class ExternalCommandError(RuntimeError):
    """Raised when an external command exits non-zero."""

    def __init__(
        self,
        message: str,
        *,
        cmd: Sequence[str],
        returncode: int,
        stdout: Optional[str] = None,
        stderr: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.cmd: List[str] = [str(x) for x in cmd]
        self.returncode = int(returncode)
        self.stdout = stdout
        self.stderr = stderr


def cmd_to_str(cmd: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(x)) for x in cmd)


def ensure_executable_in_path(exe: str, *, hint: Optional[str] = None) -> str:
    """Return the resolved path of ``exe``.

    Raises
    ------
    FileNotFoundError
        If ``exe`` is neither an executable path nor found in PATH. ``hint``
        is appended to the message.
    """
    found = shutil.which(exe)
    if found is None:
        msg = f"Required executable '{exe}' was not found in your PATH."
        if hint:
            msg += "\n\n" + hint
        raise FileNotFoundError(msg)
    return found


def stderr_tail(text: Optional[str], n: int = STDERR_TAIL_CHARS) -> str:
    if not text:
        return "(empty)"
    return text if len(text) <= n else "..." + text[-n:]


def run_command(
    cmd: Sequence[str],
    *,
    check: bool = True,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess:
    """Run ``cmd`` and return the CompletedProcess with text stdout/stderr."""
    argv = [str(x) for x in cmd]
    logger.debug("Running command: %s", cmd_to_str(argv))
    t0 = time.monotonic()

    cp = subprocess.run(argv, check=False, capture_output=True, text=True, timeout=timeout)
    logger.debug("%s exited with %d after %.2fs", argv[0], cp.returncode, time.monotonic() - t0)

    if check and cp.returncode != 0:
        raise ExternalCommandError(
            f"External command failed (exit code {cp.returncode}).\n\n"
            f"Command:\n  {cmd_to_str(argv)}\n\n"
            f"STDERR (tail):\n  {stderr_tail(cp.stderr)}",
            cmd=argv,
            returncode=cp.returncode,
            stdout=cp.stdout,
            stderr=cp.stderr,
        )
    return cp
