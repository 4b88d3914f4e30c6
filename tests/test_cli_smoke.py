import subprocess
import sys


def test_cli_help() -> None:
    cp = subprocess.run(
        [sys.executable, "-m", "kboview", "--help"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert "kboview" in cp.stdout.lower()
    for cmd in ("find", "call", "map", "doctor"):
        assert cmd in cp.stdout
