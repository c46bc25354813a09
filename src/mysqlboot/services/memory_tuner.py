"""Memory based auto-tuning for mysqlboot."""

import os
from typing import Dict, Iterable, Mapping, Optional, Tuple

from mysqlboot.constants import MB, MEMORY_TUNING_TABLE, NO_MEMORY_LIMIT
from mysqlboot.models import ResourceBudget


class MemoryTuner:
    """Computes buffer sizes as a fixed share of the container memory limit."""

    def __init__(self, table: Iterable[Tuple[str, int]] = MEMORY_TUNING_TABLE):
        self.table = tuple(table)

    def tune(self, memory_limit: Optional[int], overrides: Iterable[str] = ()) -> Dict[str, str]:
        if not memory_limit or memory_limit <= 0:
            return {}

        skip = set(overrides)
        tuned: Dict[str, str] = {}
        for setting, percentage in self.table:
            if setting in skip:
                continue
            megabytes = (memory_limit * percentage // 100) // MB
            if megabytes < 1:
                continue
            tuned[setting] = f"{megabytes}M"
        return tuned


class ResourceProbe:
    """Reads the memory limit the container runs under."""

    CGROUP_V2_MEMORY_MAX = "/sys/fs/cgroup/memory.max"
    CGROUP_V1_MEMORY_LIMIT = "/sys/fs/cgroup/memory/memory.limit_in_bytes"
    MEMINFO = "/proc/meminfo"

    def __init__(self, logger, root: str = "/"):
        self.logger = logger
        self.root = root

    def _path(self, path: str) -> str:
        return os.path.join(self.root, path.lstrip("/"))

    def read_budget(self, env: Mapping[str, str]) -> ResourceBudget:
        explicit = env.get("MEMORY_LIMIT_IN_BYTES", "").strip()
        if explicit:
            limit = self._parse_limit(explicit)
            if limit is None:
                self.logger.warning("Ignoring unparsable MEMORY_LIMIT_IN_BYTES=%s", explicit)
            return ResourceBudget(memory_limit=limit)

        for candidate in (self.CGROUP_V2_MEMORY_MAX, self.CGROUP_V1_MEMORY_LIMIT):
            raw = self._read_first_line(self._path(candidate))
            if raw is None:
                continue
            limit = self._parse_limit(raw)
            if limit is not None:
                host_total = self._host_memory()
                if host_total and limit >= host_total:
                    self.logger.debug("cgroup limit %s is not below host memory, ignoring", limit)
                    return ResourceBudget()
            self.logger.debug("Memory limit from %s: %s", candidate, limit)
            return ResourceBudget(memory_limit=limit)

        return ResourceBudget()

    @staticmethod
    def _parse_limit(raw: str) -> Optional[int]:
        value = raw.strip()
        if value == "max":
            return None
        try:
            limit = int(value)
        except ValueError:
            return None
        if limit <= 0 or limit >= NO_MEMORY_LIMIT:
            return None
        return limit

    @staticmethod
    def _read_first_line(path: str) -> Optional[str]:
        try:
            with open(path, "r", encoding="utf-8") as file_obj:
                return file_obj.readline()
        except OSError:
            return None

    def _host_memory(self) -> Optional[int]:
        try:
            with open(self._path(self.MEMINFO), "r", encoding="utf-8") as file_obj:
                for line in file_obj:
                    if line.startswith("MemTotal:"):
                        return int(line.split()[1]) * 1024
        except (OSError, ValueError, IndexError):
            return None
        return None
