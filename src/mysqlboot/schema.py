"""Typed schema of the environment variables that drive server settings."""

import re
from dataclasses import dataclass
from enum import Enum


class SettingKind(str, Enum):
    INTEGER = "integer"
    SIZE = "size"
    BOOLEAN = "boolean"

    @property
    def pattern(self) -> str:
        return _KIND_PATTERNS[self]

    @property
    def expected(self) -> str:
        return _KIND_DESCRIPTIONS[self]

    def accepts(self, value: str) -> bool:
        return re.fullmatch(self.pattern, value) is not None


_KIND_PATTERNS = {
    SettingKind.INTEGER: r"\d+",
    SettingKind.SIZE: r"\d+[KkMmGg]?",
    SettingKind.BOOLEAN: r"[01]",
}

_KIND_DESCRIPTIONS = {
    SettingKind.INTEGER: "a non-negative integer",
    SettingKind.SIZE: "a size such as 8388608, 256K, 8M or 1G",
    SettingKind.BOOLEAN: "0 or 1",
}


@dataclass(frozen=True)
class EnvSetting:
    variable: str
    setting: str
    default: str
    kind: SettingKind
    auto_tunable: bool = False


SETTINGS_SCHEMA = (
    EnvSetting("MYSQL_LOWER_CASE_TABLE_NAMES", "lower_case_table_names", "0", SettingKind.INTEGER),
    EnvSetting("MYSQL_MAX_CONNECTIONS", "max_connections", "151", SettingKind.INTEGER),
    EnvSetting("MYSQL_MAX_ALLOWED_PACKET", "max_allowed_packet", "200M", SettingKind.SIZE),
    EnvSetting("MYSQL_FT_MIN_WORD_LEN", "ft_min_word_len", "4", SettingKind.INTEGER),
    EnvSetting("MYSQL_FT_MAX_WORD_LEN", "ft_max_word_len", "20", SettingKind.INTEGER),
    EnvSetting("MYSQL_AIO", "innodb_use_native_aio", "1", SettingKind.BOOLEAN),
    EnvSetting("MYSQL_TABLE_OPEN_CACHE", "table_open_cache", "400", SettingKind.INTEGER),
    EnvSetting("MYSQL_KEY_BUFFER_SIZE", "key_buffer_size", "32M", SettingKind.SIZE, True),
    EnvSetting("MYSQL_SORT_BUFFER_SIZE", "sort_buffer_size", "256K", SettingKind.SIZE),
    EnvSetting("MYSQL_READ_BUFFER_SIZE", "read_buffer_size", "8M", SettingKind.SIZE, True),
    EnvSetting(
        "MYSQL_INNODB_BUFFER_POOL_SIZE", "innodb_buffer_pool_size", "32M", SettingKind.SIZE, True
    ),
    EnvSetting("MYSQL_INNODB_LOG_FILE_SIZE", "innodb_log_file_size", "8M", SettingKind.SIZE, True),
    EnvSetting(
        "MYSQL_INNODB_LOG_BUFFER_SIZE", "innodb_log_buffer_size", "8M", SettingKind.SIZE, True
    ),
    EnvSetting("MYSQL_LOG_QUERIES_ENABLED", "general_log", "0", SettingKind.BOOLEAN),
)


def env_value(env, variable: str):
    """Returns the variable's value, treating unset and empty the same way."""
    value = env.get(variable)
    if value is None or value == "":
        return None
    return value
