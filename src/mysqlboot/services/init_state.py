"""Data directory inspection for mysqlboot."""

import os

from mysqlboot.constants import ENGINE_MANAGED_ENTRIES, IGNORED_DATA_DIR_ENTRIES
from mysqlboot.errors import InitializationError
from mysqlboot.models import InitializationState


class InitStateDetector:
    """Classifies a start as pristine or existing from the data directory contents."""

    def __init__(self, logger):
        self.logger = logger

    def detect(self, data_dir: str) -> InitializationState:
        if not os.path.exists(data_dir):
            self.logger.debug("Data directory %s does not exist yet", data_dir)
            return InitializationState.PRISTINE

        if not os.path.isdir(data_dir):
            raise InitializationError(f"Data directory path is not a directory: {data_dir}")

        try:
            entries = set(os.listdir(data_dir)) - set(IGNORED_DATA_DIR_ENTRIES)
        except OSError as exc:
            raise InitializationError(f"Could not read data directory {data_dir}: {exc}") from exc

        managed = entries.intersection(ENGINE_MANAGED_ENTRIES)
        if managed:
            self.logger.debug("Found engine managed entries in %s: %s", data_dir, sorted(managed))
            return InitializationState.EXISTING

        if entries:
            self.logger.warning(
                "Data directory %s has files but no initialized server: %s",
                data_dir,
                ", ".join(sorted(entries)),
            )
        return InitializationState.PRISTINE
