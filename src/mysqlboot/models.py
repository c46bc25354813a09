"""Shared domain models for mysqlboot."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, Optional, Tuple

from packaging.version import Version

from mysqlboot.constants import ROOT_USER


class Provenance(str, Enum):
    DEFAULT = "default"
    AUTO_TUNED = "auto-tuned"
    ENV = "env"
    USER_FILE = "user-file"


# Later entries win when two sources set the same option.
PROVENANCE_RANK = {
    Provenance.DEFAULT: 0,
    Provenance.AUTO_TUNED: 1,
    Provenance.ENV: 2,
    Provenance.USER_FILE: 3,
}


class InitializationState(str, Enum):
    PRISTINE = "pristine"
    EXISTING = "existing"


class ReplicationRole(str, Enum):
    NONE = "none"
    MASTER = "master"
    SLAVE = "slave"


class BinlogFormat(str, Enum):
    STATEMENT = "statement"
    ROW = "row"


class ReplicationState(str, Enum):
    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    FAILED = "failed"


class CredentialScope(str, Enum):
    LOCAL_ONLY = "local-only"
    REMOTE = "remote"


class ValidationRule(str, Enum):
    INCOMPLETE_ACCOUNT = "incomplete_account"
    RESERVED_USERNAME = "reserved_username"
    INVALID_USERNAME = "invalid_username"
    INVALID_DATABASE = "invalid_database"
    INVALID_PASSWORD = "invalid_password"
    INVALID_SETTING = "invalid_setting"
    INVALID_BINLOG_FORMAT = "invalid_binlog_format"
    MISSING_REPLICATION_CREDENTIALS = "missing_replication_credentials"
    MISSING_MASTER_ADDRESS = "missing_master_address"
    INVALID_FRAGMENT = "invalid_fragment"


@dataclass(frozen=True)
class Setting:
    name: str
    value: Optional[str]
    provenance: Provenance


@dataclass(frozen=True)
class Configuration:
    """Final server settings for one start, each tagged with where it came from."""

    settings: Tuple[Setting, ...] = ()
    extra_sections: Tuple[Tuple[str, Tuple[Tuple[str, Optional[str]], ...]], ...] = ()

    def __iter__(self) -> Iterator[Setting]:
        return iter(self.settings)

    def __contains__(self, name: str) -> bool:
        return any(setting.name == name for setting in self.settings)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        for setting in self.settings:
            if setting.name == name:
                return setting.value
        return default

    def provenance_of(self, name: str) -> Optional[Provenance]:
        for setting in self.settings:
            if setting.name == name:
                return setting.provenance
        return None

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {setting.name: setting.value for setting in self.settings}

    def render(self) -> str:
        lines = ["# Generated by mysqlboot on every start. Edits are overwritten.", "[mysqld]"]
        for setting in self.settings:
            lines.append(setting.name if setting.value is None else f"{setting.name} = {setting.value}")

        for section, options in self.extra_sections:
            lines.append("")
            lines.append(f"[{section}]")
            for name, value in options:
                lines.append(name if value is None else f"{name} = {value}")

        return "\n".join(lines) + "\n"


@dataclass(frozen=True)
class ResourceBudget:
    memory_limit: Optional[int] = None

    @property
    def has_limit(self) -> bool:
        return bool(self.memory_limit)


@dataclass(frozen=True)
class Credential:
    username: str
    password: Optional[str]
    scope: CredentialScope = CredentialScope.REMOTE

    def __repr__(self) -> str:
        return f"Credential(username={self.username!r}, scope={self.scope.value!r})"


@dataclass(frozen=True)
class CredentialSet:
    application: Optional[Credential] = None
    database: Optional[str] = None
    root_password: Optional[str] = None

    @property
    def root(self) -> Credential:
        """Root is reachable remotely only when a password is declared."""
        if self.root_password is None:
            return Credential(username=ROOT_USER, password=None, scope=CredentialScope.LOCAL_ONLY)
        return Credential(username=ROOT_USER, password=self.root_password)

    @property
    def root_remote_enabled(self) -> bool:
        return self.root.scope == CredentialScope.REMOTE


@dataclass(frozen=True)
class ReplicationLink:
    role: ReplicationRole
    username: str
    password: str
    binlog_format: BinlogFormat = BinlogFormat.STATEMENT
    master_host: Optional[str] = None
    master_port: int = 3306

    def __repr__(self) -> str:
        return (
            f"ReplicationLink(role={self.role.value!r}, username={self.username!r}, "
            f"master_host={self.master_host!r}, binlog_format={self.binlog_format.value!r})"
        )


@dataclass(frozen=True)
class StartupPlan:
    """Everything validated from the environment before any process is started."""

    configuration: Configuration
    credentials: CredentialSet
    role: ReplicationRole = ReplicationRole.NONE
    replication: Optional[ReplicationLink] = None
    budget: ResourceBudget = field(default_factory=ResourceBudget)


@dataclass(frozen=True)
class RuntimePaths:
    data_dir: str
    defaults_file: str
    config_dir: str
    init_dir: str
    socket: str
    local_socket: str
    mysqld: str
    mysql_client: str


@dataclass(frozen=True)
class ServerVersion:
    version: Version
    mariadb: bool = False

    @property
    def uses_replica_syntax(self) -> bool:
        return not self.mariadb and self.version >= Version("8.0.22")

    @property
    def uses_binary_log_status(self) -> bool:
        return not self.mariadb and self.version >= Version("8.2")

    @property
    def needs_public_key(self) -> bool:
        return not self.mariadb and self.version >= Version("8.0")

    @property
    def supports_initialize(self) -> bool:
        return not self.mariadb and self.version >= Version("5.7.6")

    @property
    def skip_replica_start_option(self) -> str:
        if not self.mariadb and self.version >= Version("8.0.26"):
            return "--skip-replica-start"
        return "--skip-slave-start"
