import sys

import pytest

from kboview.external import ExternalCommandError, cmd_to_str, ensure_executable_in_path, run_command


def test_missing_executable_has_hint():
    with pytest.raises(FileNotFoundError) as exc:
        ensure_executable_in_path("definitely-not-a-real-binary", hint="install it")
    assert "install it" in str(exc.value)


def test_run_command_captures_stdout():
    cp = run_command([sys.executable, "-c", "print('hello')"])
    assert cp.stdout.strip() == "hello"


def test_failure_reports_stderr_tail():
    with pytest.raises(ExternalCommandError) as exc:
        run_command([sys.executable, "-c", "import sys; sys.stderr.write('bad input'); sys.exit(3)"])
    assert exc.value.returncode == 3
    assert "bad input" in str(exc.value)


def test_cmd_to_str_quotes():
    assert cmd_to_str(["kbo", "find", "my file.fa"]) == "kbo find 'my file.fa'"
