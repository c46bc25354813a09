"""Account reconciliation for mysqlboot."""

from typing import List

from mysqlboot.errors import CommandError, CredentialError
from mysqlboot.models import CredentialScope, CredentialSet
from mysqlboot.services.admin_client import account, quote_identifier, quote_literal


class CredentialEnforcer:
    """Makes the server's accounts match the declared environment on every start.

    The environment is the only source of truth: a password changed through a
    client session is overwritten the next time the container starts.
    """

    def __init__(self, logger, console):
        self.logger = logger
        self.console = console

    def build_statements(self, credentials: CredentialSet) -> List[str]:
        statements: List[str] = []

        application = credentials.application
        if application is not None:
            user = account(application.username)
            password = quote_literal(application.password)
            statements += [
                f"CREATE USER IF NOT EXISTS {user} IDENTIFIED BY {password};",
                f"ALTER USER {user} IDENTIFIED BY {password};",
            ]
            if credentials.database:
                database = quote_identifier(credentials.database)
                statements += [
                    f"CREATE DATABASE IF NOT EXISTS {database};",
                    f"GRANT ALL ON {database}.* TO {user};",
                ]

        root = credentials.root
        remote_root = account(root.username)
        if root.scope == CredentialScope.REMOTE:
            password = quote_literal(root.password)
            statements += [
                f"CREATE USER IF NOT EXISTS {remote_root} IDENTIFIED BY {password};",
                f"ALTER USER {remote_root} IDENTIFIED BY {password};",
                f"GRANT ALL ON *.* TO {remote_root} WITH GRANT OPTION;",
            ]
        else:
            statements += [
                f"DROP USER IF EXISTS {remote_root};",
                f"ALTER USER {account(root.username, 'localhost')} IDENTIFIED BY '';",
            ]

        statements.append("FLUSH PRIVILEGES;")
        return statements

    def enforce(self, credentials: CredentialSet, admin):
        self.console.print("[blue]Reconciling database accounts...[/blue]")

        if not admin.ping():
            raise CredentialError(
                f"Admin connection to {admin.target} is not accepting connections. "
                "Accounts were not reconciled and the server will not be exposed."
            )

        statements = self.build_statements(credentials)
        try:
            admin.execute("\n".join(statements) + "\n")
        except CommandError as exc:
            raise CredentialError(f"Account reconciliation failed: {exc}") from exc

        if credentials.application is not None:
            self.logger.info(
                "Application account '%s' is in sync with the environment",
                credentials.application.username,
            )
        if credentials.root_remote_enabled:
            self.logger.info("Remote root access enabled with the declared password")
        else:
            self.logger.info("Remote root access disabled; root may only log in locally")
        self.console.print("[green]Accounts reconciled.[/green]")
