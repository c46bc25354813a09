"""Actionable error catalog for mysqlboot."""

from typing import Dict

from mysqlboot.models import ValidationRule

_ERROR_MESSAGES: Dict[ValidationRule, Dict[str, str]] = {
    ValidationRule.INCOMPLETE_ACCOUNT: {
        "what": "MYSQL_USER, MYSQL_PASSWORD and MYSQL_DATABASE must be set together (missing: {missing}).",
        "next": "Provide all three variables to create an application account, or none of them.",
    },
    ValidationRule.RESERVED_USERNAME: {
        "what": "MYSQL_USER cannot be '{username}'.",
        "next": "Use MYSQL_ROOT_PASSWORD to manage the root account and pick another application user name.",
    },
    ValidationRule.INVALID_USERNAME: {
        "what": "Invalid value for {variable}: '{value}'.",
        "next": "Use only letters, digits and underscores, at most {limit} characters.",
    },
    ValidationRule.INVALID_DATABASE: {
        "what": "Invalid value for MYSQL_DATABASE: '{value}'.",
        "next": "Use only letters, digits and underscores, at most {limit} characters.",
    },
    ValidationRule.INVALID_PASSWORD: {
        "what": "Invalid value for {variable}.",
        "next": "Passwords must not be empty and must not contain a single quote or a backslash.",
    },
    ValidationRule.INVALID_SETTING: {
        "what": "Invalid value for {variable}: '{value}'.",
        "next": "Expected {expected}.",
    },
    ValidationRule.INVALID_BINLOG_FORMAT: {
        "what": "Invalid value for MYSQL_BINLOG_FORMAT: '{value}'.",
        "next": "Use 'statement' or 'row'.",
    },
    ValidationRule.MISSING_REPLICATION_CREDENTIALS: {
        "what": "The {role} role requires MYSQL_MASTER_USER and MYSQL_MASTER_PASSWORD (missing: {missing}).",
        "next": "Set the replication account on both the master and the slave.",
    },
    ValidationRule.MISSING_MASTER_ADDRESS: {
        "what": "The slave role requires a valid MYSQL_MASTER_SERVICE_NAME.",
        "next": "Point MYSQL_MASTER_SERVICE_NAME at the master's host name or address, optionally with a :port from 1 to 65535.",
    },
    ValidationRule.INVALID_FRAGMENT: {
        "what": "Could not parse configuration fragment {path}: {reason}",
        "next": "Fix the file so it is a valid my.cnf fragment with a section header such as [mysqld].",
    },
}


def actionable_error(code: ValidationRule, **kwargs) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
