"""User supplied SQL applied once, right after a data directory is created."""

from pathlib import Path
from typing import List, Optional

from mysqlboot.errors import CommandError, InitializationError


class InitScriptService:
    def __init__(self, logger, console):
        self.logger = logger
        self.console = console

    def discover(self, init_dir: str) -> List[Path]:
        directory = Path(init_dir)
        if not directory.is_dir():
            return []
        return sorted(path for path in directory.glob("*.sql") if path.is_file())

    def apply(self, init_dir: str, admin, database: Optional[str] = None) -> List[str]:
        scripts = self.discover(init_dir)
        if not scripts:
            return []

        self.console.print(f"[blue]Running {len(scripts)} initialization script(s)...[/blue]")
        applied = []
        for script in scripts:
            self.logger.info("Running initialization script %s", script)
            try:
                admin.execute(script.read_text(encoding="utf-8"), database=database)
            except (OSError, CommandError) as exc:
                raise InitializationError(f"Initialization script {script} failed: {exc}") from exc
            applied.append(script.name)
        return applied
