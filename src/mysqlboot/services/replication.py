"""Master/slave replication bootstrap for mysqlboot."""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from mysqlboot.constants import (
    DEFAULT_RETRY_BACKOFF_MAX_SECONDS,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    DEFAULT_RETRY_COUNT,
    DEFAULT_STATUS_POLL_COUNT,
    DEFAULT_STATUS_POLL_INTERVAL,
)
from mysqlboot.errors import CommandError, CredentialError, ReplicationError
from mysqlboot.models import (
    Configuration,
    ReplicationLink,
    ReplicationRole,
    ReplicationState,
    ServerVersion,
)
from mysqlboot.services.admin_client import account, quote_literal

TRANSITIONS = {
    ReplicationState.UNCONFIGURED: {ReplicationState.CONFIGURED},
    ReplicationState.CONFIGURED: {ReplicationState.CONNECTING},
    ReplicationState.CONNECTING: {ReplicationState.STREAMING, ReplicationState.FAILED},
    ReplicationState.FAILED: {ReplicationState.CONNECTING},
    ReplicationState.STREAMING: set(),
}

REQUIRED_SETTINGS = ("server_id", "log_bin", "binlog_format")


class LinkFailure(Exception):
    """One connection attempt failed; the caller decides whether to retry."""


@dataclass(frozen=True)
class BinlogCoordinates:
    log_file: str
    log_pos: int


class ReplicationDialect:
    """Statement and status field names for the running server version."""

    def __init__(self, server_version: ServerVersion):
        self.server_version = server_version
        replica = server_version.uses_replica_syntax
        self.status_query = "SHOW REPLICA STATUS;" if replica else "SHOW SLAVE STATUS;"
        self.start_statement = "START REPLICA;" if replica else "START SLAVE;"
        self.stop_statement = "STOP REPLICA;" if replica else "STOP SLAVE;"
        self.io_running_field = "Replica_IO_Running" if replica else "Slave_IO_Running"
        self.sql_running_field = "Replica_SQL_Running" if replica else "Slave_SQL_Running"
        self.source_host_field = "Source_Host" if replica else "Master_Host"
        self.source_port_field = "Source_Port" if replica else "Master_Port"
        self.coordinates_query = (
            "SHOW BINARY LOG STATUS;"
            if server_version.uses_binary_log_status
            else "SHOW MASTER STATUS;"
        )
        self._prefix = "SOURCE" if replica else "MASTER"
        self._change = "CHANGE REPLICATION SOURCE TO" if replica else "CHANGE MASTER TO"

    def change_source(self, link: ReplicationLink, coordinates: BinlogCoordinates) -> str:
        prefix = self._prefix
        options = [
            f"{prefix}_HOST={quote_literal(link.master_host)}",
            f"{prefix}_PORT={link.master_port}",
            f"{prefix}_USER={quote_literal(link.username)}",
            f"{prefix}_PASSWORD={quote_literal(link.password)}",
            f"{prefix}_LOG_FILE={quote_literal(coordinates.log_file)}",
            f"{prefix}_LOG_POS={coordinates.log_pos}",
        ]
        if self.server_version.needs_public_key:
            options.append(f"GET_{prefix}_PUBLIC_KEY=1")
        return f"{self._change} {', '.join(options)};"


class ReplicationBootstrapper:
    """Drives a replication link from unconfigured to streaming.

    The master only needs binary logging and the replication account; it stays
    passive and slaves register with it. The slave points itself at the
    master's current binlog coordinates, starts its I/O and SQL threads and
    waits until both report running, retrying with exponential backoff.
    """

    def __init__(
        self,
        logger,
        console,
        retry_count: int = DEFAULT_RETRY_COUNT,
        retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS,
        retry_backoff_max_seconds: float = DEFAULT_RETRY_BACKOFF_MAX_SECONDS,
        status_poll_count: int = DEFAULT_STATUS_POLL_COUNT,
        status_poll_interval: float = DEFAULT_STATUS_POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.logger = logger
        self.console = console
        self.retry_count = retry_count
        self.retry_backoff_seconds = retry_backoff_seconds
        self.retry_backoff_max_seconds = retry_backoff_max_seconds
        self.status_poll_count = max(1, status_poll_count)
        self.status_poll_interval = status_poll_interval
        self.sleep = sleep
        self.state = ReplicationState.UNCONFIGURED
        self.history = [ReplicationState.UNCONFIGURED]

    def transition(self, new_state: ReplicationState):
        if new_state not in TRANSITIONS[self.state]:
            raise ReplicationError(
                f"Invalid replication state transition: {self.state.value} -> {new_state.value}"
            )
        self.logger.debug("Replication state %s -> %s", self.state.value, new_state.value)
        self.state = new_state
        self.history.append(new_state)

    def backoff_delay(self, attempt: int) -> float:
        delay = self.retry_backoff_seconds * (2 ** (attempt - 1))
        return min(delay, self.retry_backoff_max_seconds)

    def configure(self, link: ReplicationLink, configuration: Configuration):
        missing = [name for name in REQUIRED_SETTINGS if configuration.get(name) in (None, "")]
        if missing:
            raise ReplicationError(
                f"Binary logging is not configured for the {link.role.value} role "
                f"(missing: {', '.join(missing)})."
            )
        self.logger.info(
            "Binary logging enabled: server_id=%s, format=%s",
            configuration.get("server_id"),
            configuration.get("binlog_format"),
        )
        self.transition(ReplicationState.CONFIGURED)

    def run(
        self,
        link: ReplicationLink,
        configuration: Configuration,
        admin,
        dialect: ReplicationDialect,
        master_client=None,
    ) -> ReplicationState:
        self.configure(link, configuration)
        if link.role == ReplicationRole.MASTER:
            self.expose_master(link, admin)
            return self.state
        if master_client is None:
            raise ReplicationError("The slave role needs a client session to the master.")
        self.connect_slave(link, admin, dialect, master_client)
        return self.state

    def expose_master(self, link: ReplicationLink, admin):
        self.console.print("[blue]Creating the replication account...[/blue]")
        user = account(link.username)
        password = quote_literal(link.password)
        statements = [
            f"CREATE USER IF NOT EXISTS {user} IDENTIFIED BY {password};",
            f"ALTER USER {user} IDENTIFIED BY {password};",
            f"GRANT REPLICATION SLAVE, REPLICATION CLIENT ON *.* TO {user};",
            "FLUSH PRIVILEGES;",
        ]
        try:
            admin.execute("\n".join(statements) + "\n")
        except CommandError as exc:
            raise CredentialError(f"Could not create the replication account: {exc}") from exc
        self.logger.info("Replication account '%s' ready; waiting for slaves to register", link.username)
        self.console.print("[green]Master is ready for slaves.[/green]")

    def current_source(self, admin, dialect: ReplicationDialect) -> Optional[Dict[str, Optional[str]]]:
        rows = admin.query(dialect.status_query)
        return rows[0] if rows else None

    def master_coordinates(self, master_client, dialect: ReplicationDialect) -> BinlogCoordinates:
        rows = master_client.query(dialect.coordinates_query)
        if not rows or not rows[0].get("File"):
            raise LinkFailure(
                f"Master {master_client.target} reports no binary log; is it running in the master role?"
            )
        row = rows[0]
        try:
            return BinlogCoordinates(log_file=row["File"], log_pos=int(row.get("Position") or 0))
        except ValueError as exc:
            raise LinkFailure(f"Unexpected binlog position from master: {row}") from exc

    def wait_for_streaming(self, admin, dialect: ReplicationDialect):
        for poll in range(1, self.status_poll_count + 1):
            status = self.current_source(admin, dialect)
            if status is None:
                raise LinkFailure("The server reports no replication source.")

            io_running = status.get(dialect.io_running_field)
            sql_running = status.get(dialect.sql_running_field)
            if io_running == "Yes" and sql_running == "Yes":
                return

            for errno_field, error_field in (
                ("Last_IO_Errno", "Last_IO_Error"),
                ("Last_SQL_Errno", "Last_SQL_Error"),
            ):
                errno = status.get(errno_field)
                if errno not in (None, "", "0"):
                    raise LinkFailure(f"{status.get(error_field) or 'replication error'} (errno {errno})")

            self.logger.debug(
                "Waiting for replication threads (poll %s/%s): io=%s sql=%s",
                poll,
                self.status_poll_count,
                io_running,
                sql_running,
            )
            if poll < self.status_poll_count:
                self.sleep(self.status_poll_interval)

        raise LinkFailure("Replication threads did not report running in time.")

    def connect_slave(self, link: ReplicationLink, admin, dialect: ReplicationDialect, master_client):
        self.console.print(
            f"[blue]Connecting to master {link.master_host}:{link.master_port}...[/blue]"
        )

        existing = self.current_source(admin, dialect)
        directive_accepted = bool(
            existing
            and existing.get(dialect.source_host_field) == link.master_host
            and str(existing.get(dialect.source_port_field)) == str(link.master_port)
        )
        if directive_accepted:
            self.logger.info("Already replicating from %s; restarting threads", link.master_host)

        max_attempts = max(1, self.retry_count)
        last_error: Optional[Exception] = None

        for attempt in range(1, max_attempts + 1):
            try:
                if not directive_accepted:
                    coordinates = self.master_coordinates(master_client, dialect)
                    admin.execute(dialect.stop_statement + "\n" + dialect.change_source(link, coordinates))
                    directive_accepted = True
                    self.logger.info(
                        "Replicating from %s:%s at %s:%s",
                        link.master_host,
                        link.master_port,
                        coordinates.log_file,
                        coordinates.log_pos,
                    )
                self.transition(ReplicationState.CONNECTING)
                admin.execute(dialect.start_statement)
                self.wait_for_streaming(admin, dialect)
            except (CommandError, LinkFailure) as exc:
                last_error = exc
                if self.state == ReplicationState.CONNECTING:
                    self.transition(ReplicationState.FAILED)
                if attempt == max_attempts:
                    break
                delay = self.backoff_delay(attempt)
                self.logger.warning(
                    "Replication attempt %s/%s failed: %s. Retrying in %.1fs",
                    attempt,
                    max_attempts,
                    exc,
                    delay,
                )
                self.sleep(delay)
                if directive_accepted:
                    self._stop_threads(admin, dialect)
                continue

            self.transition(ReplicationState.STREAMING)
            self.console.print("[green]Slave is streaming from master.[/green]")
            return

        raise ReplicationError(
            f"Could not replicate from {link.master_host}:{link.master_port} after "
            f"{max_attempts} attempt(s): {last_error}"
        )

    def _stop_threads(self, admin, dialect: ReplicationDialect):
        try:
            admin.execute(dialect.stop_statement)
        except CommandError as exc:
            self.logger.debug("Stopping replication threads failed: %s", exc)
