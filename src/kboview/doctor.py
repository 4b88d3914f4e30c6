"""Environment self-checks.

This module powers the ``kboview doctor`` CLI command. The Python side of
kboview only needs its installed dependencies, but every analysis mode runs
the external ``kbo`` executable, so a missing binary is the most common
setup problem.
"""

from __future__ import annotations

import logging
import platform
import shutil
from dataclasses import dataclass
from typing import Dict, Optional

import pysam

from .external import KBO_INSTALL_HINT, ExternalCommandError, run_command

logger = logging.getLogger(__name__)

CHECK_ORDER = ["python", "pysam", "kbo"]


@dataclass(frozen=True)
class CheckResult:
    name: str
    ok: bool
    detail: str
    howto: Optional[str] = None


def check_python() -> CheckResult:
    v = platform.python_version()
    return CheckResult(name="python", ok=True, detail=f"Python {v}")


def check_pysam() -> CheckResult:
    return CheckResult(name="pysam", ok=True, detail=f"pysam {pysam.__version__}")


def check_kbo(executable: str = "kbo") -> CheckResult:
    path = shutil.which(executable)
    if path is None:
        return CheckResult(name="kbo", ok=False, detail="not found in PATH", howto=KBO_INSTALL_HINT)
    try:
        cp = run_command([path, "--version"], check=True)
    except (ExternalCommandError, OSError) as e:
        return CheckResult(
            name="kbo",
            ok=False,
            detail=f"kbo present but not usable: {e}",
            howto=KBO_INSTALL_HINT,
        )
    version = (cp.stdout or "").strip().splitlines()
    detail = f"{path} ({version[0]})" if version else path
    return CheckResult(name="kbo", ok=True, detail=detail)


def collect_checks(*, executable: str = "kbo") -> Dict[str, CheckResult]:
    """Run all checks and return a mapping name->result."""
    checks: Dict[str, CheckResult] = {}
    checks["python"] = check_python()
    checks["pysam"] = check_pysam()
    checks["kbo"] = check_kbo(executable)
    return checks
