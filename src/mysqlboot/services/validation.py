"""Environment validation for mysqlboot."""

import re
from typing import Mapping, Optional, Tuple

from mysqlboot.constants import (
    DATABASE_MAX_LENGTH,
    FORBIDDEN_PASSWORD_CHARS,
    IDENTIFIER_PATTERN,
    MYSQL_PORT,
    ROOT_USER,
    USERNAME_MAX_LENGTH,
)
from mysqlboot.errors import ValidationError
from mysqlboot.errors_catalog import actionable_error
from mysqlboot.models import (
    BinlogFormat,
    Credential,
    CredentialSet,
    ReplicationLink,
    ReplicationRole,
    ValidationRule,
)
from mysqlboot.schema import SETTINGS_SCHEMA, env_value

ACCOUNT_VARIABLES = ("MYSQL_USER", "MYSQL_PASSWORD", "MYSQL_DATABASE")
REPLICATION_VARIABLES = ("MYSQL_MASTER_USER", "MYSQL_MASTER_PASSWORD")
MAX_PORT = 65535


class EnvironmentValidator:
    """Checks every environment rule in a fixed order and stops at the first violation."""

    HOST_PATTERN = r"[A-Za-z0-9_.\-]+(?::\d{1,5})?"

    def validate(
        self, env: Mapping[str, str], role: ReplicationRole = ReplicationRole.NONE
    ) -> Tuple[CredentialSet, Optional[ReplicationLink]]:
        credentials = self.validate_accounts(env)
        self.validate_settings(env)
        binlog_format = self.validate_binlog_format(env)
        link = self.validate_replication(env, role, binlog_format)
        return credentials, link

    def validate_accounts(self, env: Mapping[str, str]) -> CredentialSet:
        values = {name: env_value(env, name) for name in ACCOUNT_VARIABLES}
        present = [name for name, value in values.items() if value is not None]
        if present and len(present) != len(ACCOUNT_VARIABLES):
            missing = ", ".join(name for name in ACCOUNT_VARIABLES if values[name] is None)
            raise ValidationError(
                ValidationRule.INCOMPLETE_ACCOUNT,
                actionable_error(ValidationRule.INCOMPLETE_ACCOUNT, missing=missing),
            )

        application = None
        database = None
        if present:
            username = values["MYSQL_USER"]
            if username.lower() == ROOT_USER:
                raise ValidationError(
                    ValidationRule.RESERVED_USERNAME,
                    actionable_error(ValidationRule.RESERVED_USERNAME, username=username),
                )
            self.ensure_username("MYSQL_USER", username)

            database = values["MYSQL_DATABASE"]
            if not self.is_identifier(database, DATABASE_MAX_LENGTH):
                raise ValidationError(
                    ValidationRule.INVALID_DATABASE,
                    actionable_error(
                        ValidationRule.INVALID_DATABASE, value=database, limit=DATABASE_MAX_LENGTH
                    ),
                )

            self.ensure_password("MYSQL_PASSWORD", values["MYSQL_PASSWORD"])
            application = Credential(username=username, password=values["MYSQL_PASSWORD"])

        root_password = env_value(env, "MYSQL_ROOT_PASSWORD")
        if root_password is not None:
            self.ensure_password("MYSQL_ROOT_PASSWORD", root_password)

        return CredentialSet(application=application, database=database, root_password=root_password)

    def validate_settings(self, env: Mapping[str, str]):
        for entry in SETTINGS_SCHEMA:
            value = env_value(env, entry.variable)
            if value is None or entry.kind.accepts(value):
                continue
            raise ValidationError(
                ValidationRule.INVALID_SETTING,
                actionable_error(
                    ValidationRule.INVALID_SETTING,
                    variable=entry.variable,
                    value=value,
                    expected=entry.kind.expected,
                ),
            )

    def validate_binlog_format(self, env: Mapping[str, str]) -> BinlogFormat:
        value = env_value(env, "MYSQL_BINLOG_FORMAT")
        if value is None:
            return BinlogFormat.STATEMENT
        try:
            return BinlogFormat(value.lower())
        except ValueError as exc:
            raise ValidationError(
                ValidationRule.INVALID_BINLOG_FORMAT,
                actionable_error(ValidationRule.INVALID_BINLOG_FORMAT, value=value),
            ) from exc

    def validate_replication(
        self, env: Mapping[str, str], role: ReplicationRole, binlog_format: BinlogFormat
    ) -> Optional[ReplicationLink]:
        if role == ReplicationRole.NONE:
            return None

        values = {name: env_value(env, name) for name in REPLICATION_VARIABLES}
        missing = [name for name, value in values.items() if value is None]
        if missing:
            raise ValidationError(
                ValidationRule.MISSING_REPLICATION_CREDENTIALS,
                actionable_error(
                    ValidationRule.MISSING_REPLICATION_CREDENTIALS,
                    role=role.value,
                    missing=", ".join(missing),
                ),
            )

        self.ensure_username("MYSQL_MASTER_USER", values["MYSQL_MASTER_USER"])
        self.ensure_password("MYSQL_MASTER_PASSWORD", values["MYSQL_MASTER_PASSWORD"])

        master_host = None
        master_port = MYSQL_PORT
        if role == ReplicationRole.SLAVE:
            address = env_value(env, "MYSQL_MASTER_SERVICE_NAME")
            valid = address is not None and re.fullmatch(self.HOST_PATTERN, address) is not None
            if valid:
                master_host, _, port = address.partition(":")
                if port:
                    master_port = int(port)
            if not valid or not 1 <= master_port <= MAX_PORT:
                raise ValidationError(
                    ValidationRule.MISSING_MASTER_ADDRESS,
                    actionable_error(ValidationRule.MISSING_MASTER_ADDRESS),
                )

        return ReplicationLink(
            role=role,
            username=values["MYSQL_MASTER_USER"],
            password=values["MYSQL_MASTER_PASSWORD"],
            binlog_format=binlog_format,
            master_host=master_host,
            master_port=master_port,
        )

    def ensure_username(self, variable: str, value: str):
        if not self.is_identifier(value, USERNAME_MAX_LENGTH):
            raise ValidationError(
                ValidationRule.INVALID_USERNAME,
                actionable_error(
                    ValidationRule.INVALID_USERNAME,
                    variable=variable,
                    value=value,
                    limit=USERNAME_MAX_LENGTH,
                ),
            )

    def ensure_password(self, variable: str, value: Optional[str]):
        if not value or any(char in value for char in FORBIDDEN_PASSWORD_CHARS):
            raise ValidationError(
                ValidationRule.INVALID_PASSWORD,
                actionable_error(ValidationRule.INVALID_PASSWORD, variable=variable),
            )

    @staticmethod
    def is_identifier(value: Optional[str], limit: int) -> bool:
        if not value or len(value) > limit:
            return False
        return re.fullmatch(IDENTIFIER_PATTERN, value) is not None
