import logging
import os

import click
from rich.logging import RichHandler

from .constants import (
    CONFIG_DIR,
    DATA_DIR,
    DEFAULT_RETRY_BACKOFF_MAX_SECONDS,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    DEFAULT_RETRY_COUNT,
    DEFAULT_SHUTDOWN_GRACE_SECONDS,
    DEFAULT_STARTUP_TIMEOUT,
    DEFAULT_STATUS_POLL_COUNT,
    DEFAULT_STATUS_POLL_INTERVAL,
    INIT_DIR,
    MYSQL_CLIENT_BINARY,
    MYSQLD_BINARY,
    RUNTIME_CONFIG_FILE,
    SOCKET_PATH,
)
from .core import Orchestrator
from .errors import OrchestratorError
from .models import ReplicationRole
from .services.command_runner import CommandRunner
from .services.config_loader import ConfigLoader


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


def _load_config(config):
    resolved_config = config
    if resolved_config is None and os.path.exists(RUNTIME_CONFIG_FILE):
        resolved_config = RUNTIME_CONFIG_FILE

    try:
        return ConfigLoader().load(resolved_config)
    except OrchestratorError as exc:
        raise click.ClickException(str(exc)) from exc


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)

_RUNTIME_OPTIONS = [
    click.option(
        "--config",
        required=False,
        type=click.Path(),
        help=f"Path to a YAML runtime settings file. Defaults to {RUNTIME_CONFIG_FILE} if present.",
    ),
    click.option("--data-dir", required=False, help=f"Persistent data directory (default: {DATA_DIR})"),
    click.option(
        "--config-dir",
        required=False,
        help=f"Directory with user *.cnf fragments (default: {CONFIG_DIR})",
    ),
    click.option(
        "--init-dir",
        required=False,
        help=f"Directory with *.sql scripts for new data directories (default: {INIT_DIR})",
    ),
    click.option("--socket", required=False, help=f"Server socket path (default: {SOCKET_PATH})"),
    click.option("--mysqld", required=False, help="Server binary to run."),
    click.option("--mysql-client", required=False, help="Client binary used for admin sessions."),
    click.option(
        "--startup-timeout",
        required=False,
        type=float,
        default=None,
        help="Seconds to wait for the local setup instance to accept connections.",
    ),
    click.option(
        "--shutdown-grace-seconds",
        required=False,
        type=float,
        default=None,
        help="Seconds to wait after forwarding a termination signal before killing the server.",
    ),
    click.option(
        "--retry-count",
        required=False,
        type=int,
        default=None,
        help="Attempts to establish replication before giving up (slave role).",
    ),
    click.option(
        "--retry-backoff-seconds",
        required=False,
        type=float,
        default=None,
        help="Initial backoff between replication attempts; doubles after each failure.",
    ),
    click.option(
        "--exec",
        "exec_server",
        is_flag=True,
        default=False,
        help="Replace this process with the server instead of supervising it.",
    ),
    click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging"),
    click.option("--log-file", type=click.Path(), help="Path to log file"),
    click.argument("server_args", nargs=-1, type=click.UNPROCESSED),
]


def runtime_options(func):
    for option in reversed(_RUNTIME_OPTIONS):
        func = option(func)
    return func


def _configure_logging(logger, verbose: bool, log_file):
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)


def _start(role: ReplicationRole, **options):
    logger = logging.getLogger("mysqlboot")
    config_values = _load_config(options["config"])

    verbose = bool(_resolve_option(options["verbose"], config_values, "verbose", default=False))
    log_file = _resolve_option(options["log_file"], config_values, "log_file")
    _configure_logging(logger, verbose, log_file)

    orchestrator = Orchestrator(
        role=role,
        data_dir=_resolve_option(options["data_dir"], config_values, "data_dir", default=DATA_DIR),
        config_dir=_resolve_option(
            options["config_dir"], config_values, "config_dir", default=CONFIG_DIR
        ),
        init_dir=_resolve_option(options["init_dir"], config_values, "init_dir", default=INIT_DIR),
        socket=_resolve_option(options["socket"], config_values, "socket", default=SOCKET_PATH),
        mysqld=_resolve_option(options["mysqld"], config_values, "mysqld", default=MYSQLD_BINARY),
        mysql_client=_resolve_option(
            options["mysql_client"], config_values, "mysql_client", default=MYSQL_CLIENT_BINARY
        ),
        startup_timeout=float(
            _resolve_option(
                options["startup_timeout"],
                config_values,
                "startup_timeout",
                default=DEFAULT_STARTUP_TIMEOUT,
            )
        ),
        shutdown_grace_seconds=float(
            _resolve_option(
                options["shutdown_grace_seconds"],
                config_values,
                "shutdown_grace_seconds",
                default=DEFAULT_SHUTDOWN_GRACE_SECONDS,
            )
        ),
        retry_count=int(
            _resolve_option(
                options["retry_count"], config_values, "retry_count", default=DEFAULT_RETRY_COUNT
            )
        ),
        retry_backoff_seconds=float(
            _resolve_option(
                options["retry_backoff_seconds"],
                config_values,
                "retry_backoff_seconds",
                default=DEFAULT_RETRY_BACKOFF_SECONDS,
            )
        ),
        retry_backoff_max_seconds=float(
            config_values.get("retry_backoff_max_seconds", DEFAULT_RETRY_BACKOFF_MAX_SECONDS)
        ),
        status_poll_count=int(config_values.get("status_poll_count", DEFAULT_STATUS_POLL_COUNT)),
        status_poll_interval=float(
            config_values.get("status_poll_interval", DEFAULT_STATUS_POLL_INTERVAL)
        ),
        server_args=options["server_args"],
        foreground=not options["exec_server"],
    )

    raise SystemExit(orchestrator.run())


@click.group()
def main():
    """Validate the environment, reconcile accounts and run the MySQL server."""


@main.command(context_settings={"ignore_unknown_options": True})
@runtime_options
def run(**options):
    """Start a standalone server."""
    _start(ReplicationRole.NONE, **options)


@main.command(context_settings={"ignore_unknown_options": True})
@runtime_options
def master(**options):
    """Start a replication master that accepts slaves."""
    _start(ReplicationRole.MASTER, **options)


@main.command(context_settings={"ignore_unknown_options": True})
@runtime_options
def slave(**options):
    """Start a replication slave of MYSQL_MASTER_SERVICE_NAME."""
    _start(ReplicationRole.SLAVE, **options)


@main.command(context_settings={"ignore_unknown_options": True})
@click.option("--config", required=False, type=click.Path(), help="Path to a YAML runtime settings file.")
@click.option("--socket", required=False, help=f"Server socket path (default: {SOCKET_PATH})")
@click.option("--mysql-client", required=False, help="Client binary to run.")
@click.argument("client_args", nargs=-1, type=click.UNPROCESSED)
def client(config, socket, mysql_client, client_args):
    """Open a client session to the local server as root."""
    config_values = _load_config(config)
    socket = _resolve_option(socket, config_values, "socket", default=SOCKET_PATH)
    mysql_client = _resolve_option(
        mysql_client, config_values, "mysql_client", default=MYSQL_CLIENT_BINARY
    )

    runner = CommandRunner(logger=logging.getLogger("mysqlboot"))
    cmd = [mysql_client, "--protocol=socket", f"--socket={socket}", "--user=root", *client_args]
    try:
        result = runner.run(cmd, check=False)
    except OrchestratorError as exc:
        raise click.ClickException(str(exc)) from exc
    raise SystemExit(result.returncode)


if __name__ == "__main__":
    main()
