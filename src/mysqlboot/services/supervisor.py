"""Foreground supervision of the long-lived server process."""

import os
import signal
import subprocess
import time
from typing import List, Optional, Sequence

from mysqlboot.constants import DEFAULT_SHUTDOWN_GRACE_SECONDS
from mysqlboot.errors import OrchestratorError

FORWARDED_SIGNALS = (signal.SIGTERM, signal.SIGINT, signal.SIGHUP, signal.SIGQUIT)


class ProcessSupervisor:
    """Runs the server in the foreground and owns the container's exit code.

    Termination signals are forwarded to the server. If it has not exited
    within the grace period after the first one, it is killed.
    """

    def __init__(
        self,
        logger,
        console,
        grace_seconds: float = DEFAULT_SHUTDOWN_GRACE_SECONDS,
        poll_interval: float = 0.2,
        subprocess_module=subprocess,
        signal_module=signal,
    ):
        self.logger = logger
        self.console = console
        self.grace_seconds = grace_seconds
        self.poll_interval = poll_interval
        self.subprocess = subprocess_module
        self.signal = signal_module
        self.process = None
        self.pending_signal: Optional[int] = None
        self.shutdown_deadline: Optional[float] = None

    @staticmethod
    def build_command(mysqld: str, defaults_file: str, extra_args: Sequence[str] = ()) -> List[str]:
        return [mysqld, f"--defaults-file={defaults_file}", *extra_args]

    def _forward(self, signum, _frame):
        if self.process is None:
            # Not spawned yet; delivered right after Popen.
            if self.pending_signal in (None, signal.SIGHUP):
                self.pending_signal = signum
            return
        if self.process.poll() is not None:
            return
        self.logger.info("Forwarding signal %s to server (pid %s)", signum, self.process.pid)
        self.process.send_signal(signum)
        if self.shutdown_deadline is None and signum != signal.SIGHUP:
            self.shutdown_deadline = time.monotonic() + self.grace_seconds

    def run(self, cmd: List[str], foreground: bool = True) -> int:
        if not foreground:
            self.logger.info("Replacing orchestrator with %s", " ".join(cmd))
            os.execvp(cmd[0], cmd)

        self.console.print("[bold blue]Starting MySQL server...[/bold blue]")
        previous = {sig: self.signal.signal(sig, self._forward) for sig in FORWARDED_SIGNALS}
        try:
            try:
                self.process = self.subprocess.Popen(cmd, stderr=self.subprocess.STDOUT)
            except OSError as exc:
                raise OrchestratorError(f"Failed to start the server: {exc}") from exc

            self.logger.info("Server started (pid %s)", self.process.pid)
            if self.pending_signal is not None:
                pending, self.pending_signal = self.pending_signal, None
                self._forward(pending, None)
            returncode = self._wait()
        finally:
            for sig, handler in previous.items():
                self.signal.signal(sig, handler)

        exit_code = self.exit_code(returncode)
        self.logger.info("Server exited with code %s", exit_code)
        return exit_code

    def _wait(self) -> int:
        while True:
            returncode = self.process.poll()
            if returncode is not None:
                return returncode
            if self.shutdown_deadline is not None and time.monotonic() >= self.shutdown_deadline:
                self.logger.warning(
                    "Server did not stop within %.0fs; killing it", self.grace_seconds
                )
                self.process.kill()
                return self.process.wait()
            time.sleep(self.poll_interval)

    @staticmethod
    def exit_code(returncode: int) -> int:
        if returncode < 0:
            return 128 - returncode
        return returncode
