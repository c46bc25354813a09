"""Filesystem helpers for mysqlboot."""

import logging
import os
import sys
import tempfile

from rich.console import Console

from mysqlboot.errors import InitializationError


class FileSystemService:
    """Encapsulates file and directory side effects."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console

    def set_permissions(self, path: str, mode: int):
        if sys.platform == "win32":
            return

        try:
            os.chmod(path, mode)
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)

    def ensure_dir(self, path: str, mode: int = 0o750):
        if os.path.isdir(path):
            return
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as exc:
            raise InitializationError(f"Could not create directory {path}: {exc}") from exc
        self.set_permissions(path, mode)
        self.logger.debug("Created directory: %s", path)

    def write_atomic(self, path: str, content: str, mode: int = 0o644):
        directory = os.path.dirname(path) or "."
        os.makedirs(directory, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(prefix=".mysqlboot-", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as file_obj:
                file_obj.write(content)
            self.set_permissions(temp_path, mode)
            os.replace(temp_path, path)
        except OSError as exc:
            raise InitializationError(f"Could not write {path}: {exc}") from exc
        finally:
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError:
                    pass

    def remove_file(self, path: str):
        if not os.path.exists(path):
            return
        try:
            os.remove(path)
            self.logger.debug("Removed file: %s", path)
        except OSError as exc:
            message = f"Warning: Could not remove {path}: {exc}"
            self.console.print(f"[yellow]{message}[/yellow]")
            self.logger.warning(message)
