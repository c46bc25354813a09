"""Server binary helpers: version detection, bootstrap and the local setup instance."""

import re
import subprocess
import time
from typing import Callable, List, Optional

from packaging.version import InvalidVersion, Version

from mysqlboot.errors import CommandError, InitializationError
from mysqlboot.models import RuntimePaths, ServerVersion


class DaemonService:
    """Runs the server binary for everything that happens before the final start.

    Accounts and replication are configured against a temporary instance that
    listens on a private socket only, so no remote client can connect before
    the credentials match the environment.
    """

    VERSION_PATTERN = re.compile(r"Ver\s+(\d+\.\d+\.\d+)")

    def __init__(self, logger, console, subprocess_module=subprocess):
        self.logger = logger
        self.console = console
        self.subprocess = subprocess_module

    def detect_version(self, mysqld: str, run_cmd: Callable) -> ServerVersion:
        try:
            result = run_cmd([mysqld, "--version"], check=True, capture_output=True)
        except CommandError as exc:
            raise InitializationError(f"Could not determine server version: {exc}") from exc

        output = (result.stdout or "").strip()
        match = self.VERSION_PATTERN.search(output)
        if not match:
            raise InitializationError(f"Unrecognized server version output: {output}")

        try:
            parsed = Version(match.group(1))
        except InvalidVersion as exc:
            raise InitializationError(f"Unrecognized server version: {match.group(1)}") from exc

        server_version = ServerVersion(version=parsed, mariadb="mariadb" in output.lower())
        self.logger.info(
            "Detected %s %s", "MariaDB" if server_version.mariadb else "MySQL", server_version.version
        )
        return server_version

    def bootstrap_command(self, paths: RuntimePaths, server_version: ServerVersion) -> List[str]:
        if server_version.supports_initialize:
            return [
                paths.mysqld,
                f"--defaults-file={paths.defaults_file}",
                "--initialize-insecure",
                f"--datadir={paths.data_dir}",
            ]
        return [
            "mysql_install_db",
            f"--defaults-file={paths.defaults_file}",
            "--rpm",
            f"--datadir={paths.data_dir}",
        ]

    def bootstrap(self, paths: RuntimePaths, server_version: ServerVersion, run_cmd: Callable):
        self.console.print("[blue]Initializing data directory...[/blue]")
        self.logger.info("Bootstrapping a new data directory at %s", paths.data_dir)
        try:
            run_cmd(self.bootstrap_command(paths, server_version), check=True, capture_output=True)
        except CommandError as exc:
            raise InitializationError(f"Data directory bootstrap failed: {exc}") from exc
        self.console.print("[green]Data directory initialized.[/green]")

    def local_command(self, paths: RuntimePaths, server_version: ServerVersion) -> List[str]:
        return [
            paths.mysqld,
            f"--defaults-file={paths.defaults_file}",
            "--skip-networking",
            f"--socket={paths.local_socket}",
            server_version.skip_replica_start_option,
        ]

    def start_local(self, paths: RuntimePaths, server_version: ServerVersion):
        cmd = self.local_command(paths, server_version)
        self.logger.debug("Starting local setup instance: %s", " ".join(cmd))
        try:
            return self.subprocess.Popen(cmd, stderr=self.subprocess.STDOUT)
        except OSError as exc:
            raise InitializationError(f"Failed to start the server: {exc}") from exc

    def wait_until_ready(self, process, admin, timeout: float, interval: float = 1.0):
        self.console.print("[yellow]Waiting for the server to accept local connections...[/yellow]")

        deadline = time.monotonic() + timeout
        while True:
            returncode = process.poll()
            if returncode is not None:
                raise InitializationError(
                    f"Server exited with code {returncode} before accepting connections."
                )
            if admin.ping():
                self.console.print("[green]Server is ready.[/green]")
                return
            if time.monotonic() >= deadline:
                break
            time.sleep(interval)

        raise InitializationError(
            f"Server did not accept local connections within {timeout:.0f}s. "
            "Check the server log above for the cause."
        )

    def stop_local(self, process, grace_seconds: float) -> Optional[int]:
        if process is None or process.poll() is not None:
            return None if process is None else process.returncode

        self.logger.info("Stopping local setup instance (pid %s)", process.pid)
        process.terminate()
        try:
            return process.wait(timeout=grace_seconds)
        except self.subprocess.TimeoutExpired:
            self.logger.warning(
                "Local setup instance did not stop within %.0fs; killing it", grace_seconds
            )
            process.kill()
            return process.wait()
