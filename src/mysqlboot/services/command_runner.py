"""Subprocess execution service for mysqlboot."""

import subprocess
from typing import Iterable, List, Optional

from mysqlboot.errors import CommandError

MASK = "******"


class CommandRunner:
    """Runs external commands with consistent error handling."""

    def __init__(self, logger, secrets: Iterable[str] = ()):
        self.logger = logger
        self.secrets = [secret for secret in secrets if secret]

    def mask(self, text: str) -> str:
        for secret in self.secrets:
            text = text.replace(secret, MASK)
        return text

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        timeout: Optional[float] = None,
        input: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        cmd_str = self.mask(" ".join(cmd))
        self.logger.debug("Executing: %s", cmd_str)

        try:
            result = subprocess.run(
                cmd,
                text=True,
                capture_output=capture_output,
                timeout=timeout,
                input=input,
            )
        except FileNotFoundError as exc:
            raise CommandError(
                f"Required command not found: {cmd[0]}. Check that the server binaries are installed."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandError(f"Command timed out after {timeout}s: {cmd_str}") from exc
        except OSError as exc:
            raise CommandError(f"Failed to execute command: {cmd_str}. {exc}") from exc

        if capture_output and result.stdout:
            self.logger.debug("Command output: %s", self.mask(result.stdout.strip()))

        if result.returncode == 0:
            return result

        stderr = self.mask((result.stderr or "").strip()) if capture_output else ""
        message = f"Command failed ({result.returncode}): {cmd_str}"
        if stderr:
            message = f"{message}\n{stderr}"

        if check:
            raise CommandError(message, returncode=result.returncode, stderr=stderr)

        self.logger.debug(message)
        return result
