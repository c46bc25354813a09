import sys

import pytest

from mysqlboot.errors import CommandError
from mysqlboot.services.command_runner import CommandRunner


class DummyLogger:
    def __init__(self):
        self.messages = []

    def debug(self, message, *args, **_kwargs):
        self.messages.append(message % args if args else message)

    def warning(self, message, *args, **_kwargs):
        self.messages.append(message % args if args else message)


def test_command_runner_raises_with_stderr():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(CommandError, match="boom") as exc_info:
        runner.run(
            [sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(1)"],
            check=True,
            capture_output=True,
        )

    assert exc_info.value.returncode == 1
    assert exc_info.value.stderr == "boom"


def test_command_runner_returns_when_check_disabled():
    runner = CommandRunner(logger=DummyLogger())

    result = runner.run(
        [sys.executable, "-c", "import sys; sys.exit(1)"],
        check=False,
        capture_output=True,
    )

    assert result.returncode == 1


def test_command_runner_feeds_input_on_stdin():
    runner = CommandRunner(logger=DummyLogger())

    result = runner.run(
        [sys.executable, "-c", "import sys; print(sys.stdin.read().upper())"],
        capture_output=True,
        input="select 1;",
    )

    assert result.stdout.strip() == "SELECT 1;"


def test_command_runner_timeout_raises_error():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(CommandError, match="timed out"):
        runner.run(
            [sys.executable, "-c", "import time; time.sleep(2)"],
            check=True,
            capture_output=True,
            timeout=0.1,
        )


def test_command_runner_reports_missing_binary():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(CommandError, match="Required command not found"):
        runner.run(["mysqlboot-no-such-binary"], check=True)


def test_command_runner_masks_secrets_in_errors_and_logs():
    logger = DummyLogger()
    runner = CommandRunner(logger=logger, secrets=["s3cret"])

    with pytest.raises(CommandError) as exc_info:
        runner.run(
            [sys.executable, "-c", "import sys; sys.stderr.write('bad s3cret'); sys.exit(2)", "s3cret"],
            check=True,
            capture_output=True,
        )

    assert "s3cret" not in str(exc_info.value)
    assert "******" in str(exc_info.value)
    assert all("s3cret" not in message for message in logger.messages)
