import logging
import os
import signal
import subprocess
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type

from rich.console import Console

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
    DEFAULTS_FILE,
    EXIT_UNEXPECTED,
    INIT_DIR,
    LOCAL_SOCKET_PATH,
    MYSQL_CLIENT_BINARY,
    MYSQLD_BINARY,
    SOCKET_PATH,
)
from .errors import (
    CommandError,
    CredentialError,
    InitializationError,
    OrchestrationCancelled,
    OrchestratorError,
    ReplicationError,
)
from .models import (
    InitializationState,
    ReplicationRole,
    RuntimePaths,
    ServerVersion,
    StartupPlan,
)
from .schema import env_value
from .services.admin_client import AdminClient
from .services.command_runner import CommandRunner
from .services.config_resolver import ConfigResolver
from .services.credentials import CredentialEnforcer
from .services.daemon import DaemonService
from .services.filesystem import FileSystemService
from .services.init_scripts import InitScriptService
from .services.init_state import InitStateDetector
from .services.memory_tuner import ResourceProbe
from .services.replication import ReplicationBootstrapper, ReplicationDialect
from .services.supervisor import ProcessSupervisor

console = Console()
logger = logging.getLogger("mysqlboot")

CANCEL_SIGNALS = (signal.SIGTERM, signal.SIGINT, signal.SIGHUP)


class Orchestrator:
    """Validates, prepares and then hands the container over to the server."""

    def __init__(
        self,
        role: ReplicationRole = ReplicationRole.NONE,
        env: Optional[Mapping[str, str]] = None,
        data_dir: str = DATA_DIR,
        config_dir: str = CONFIG_DIR,
        init_dir: str = INIT_DIR,
        socket: str = SOCKET_PATH,
        local_socket: str = LOCAL_SOCKET_PATH,
        mysqld: str = MYSQLD_BINARY,
        mysql_client: str = MYSQL_CLIENT_BINARY,
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT,
        shutdown_grace_seconds: float = DEFAULT_SHUTDOWN_GRACE_SECONDS,
        retry_count: int = DEFAULT_RETRY_COUNT,
        retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS,
        retry_backoff_max_seconds: float = DEFAULT_RETRY_BACKOFF_MAX_SECONDS,
        status_poll_count: int = DEFAULT_STATUS_POLL_COUNT,
        status_poll_interval: float = DEFAULT_STATUS_POLL_INTERVAL,
        server_args: Sequence[str] = (),
        foreground: bool = True,
    ):
        self.role = role
        self.env: Dict[str, str] = dict(os.environ if env is None else env)
        self.startup_timeout = startup_timeout
        self.shutdown_grace_seconds = shutdown_grace_seconds
        self.server_args = list(server_args)
        self.foreground = foreground

        self.paths = RuntimePaths(
            data_dir=data_dir,
            defaults_file=env_value(self.env, "MYSQL_DEFAULTS_FILE") or DEFAULTS_FILE,
            config_dir=config_dir,
            init_dir=init_dir,
            socket=socket,
            local_socket=local_socket,
            mysqld=mysqld,
            mysql_client=mysql_client,
        )

        self.plan: Optional[StartupPlan] = None
        self.init_state: Optional[InitializationState] = None
        self.server_version: Optional[ServerVersion] = None
        self.local_process = None
        self.current_step_name: Optional[str] = None

        self.command_runner = CommandRunner(logger=logger)
        self.filesystem_service = FileSystemService(logger=logger, console=console)
        self.resource_probe = ResourceProbe(logger=logger)
        self.config_resolver = ConfigResolver(paths=self.paths, logger=logger)
        self.init_state_detector = InitStateDetector(logger=logger)
        self.daemon_service = DaemonService(
            logger=logger,
            console=console,
            subprocess_module=subprocess,
        )
        self.credential_enforcer = CredentialEnforcer(logger=logger, console=console)
        self.init_script_service = InitScriptService(logger=logger, console=console)
        self.replication_bootstrapper = ReplicationBootstrapper(
            logger=logger,
            console=console,
            retry_count=retry_count,
            retry_backoff_seconds=retry_backoff_seconds,
            retry_backoff_max_seconds=retry_backoff_max_seconds,
            status_poll_count=status_poll_count,
            status_poll_interval=status_poll_interval,
        )
        self.supervisor = ProcessSupervisor(
            logger=logger,
            console=console,
            grace_seconds=shutdown_grace_seconds,
        )

    def _run_step(
        self,
        name: str,
        callback,
        *args,
        error_class: Type[OrchestratorError] = OrchestratorError,
        **kwargs,
    ):
        logger.debug("Step started: %s", name)
        self.current_step_name = name
        try:
            result = callback(*args, **kwargs)
        except CommandError as exc:
            raise error_class(str(exc)) from exc
        logger.debug("Step finished: %s", name)
        self.current_step_name = None
        return result

    def _run_cmd(self, cmd: List[str], check: bool = True, capture_output: bool = False, **kwargs):
        return self.command_runner.run(cmd, check=check, capture_output=capture_output, **kwargs)

    def _cancel(self, signum, _frame):
        raise OrchestrationCancelled(f"Received signal {signum} during startup; aborting.")

    def _install_cancel_handlers(self) -> Dict[int, Any]:
        return {sig: signal.signal(sig, self._cancel) for sig in CANCEL_SIGNALS}

    @staticmethod
    def _restore_handlers(previous: Dict[int, Any]):
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    def local_admin(self) -> AdminClient:
        return AdminClient(
            mysql_client=self.paths.mysql_client,
            run_cmd=self._run_cmd,
            socket=self.paths.local_socket,
        )

    def master_client(self) -> AdminClient:
        link = self.plan.replication
        return AdminClient(
            mysql_client=self.paths.mysql_client,
            run_cmd=self._run_cmd,
            host=link.master_host,
            port=link.master_port,
            user=link.username,
            password=link.password,
            get_server_public_key=bool(self.server_version and self.server_version.needs_public_key),
        )

    def resolve_configuration(self) -> StartupPlan:
        console.print("[blue]Resolving configuration...[/blue]")
        budget = self.resource_probe.read_budget(self.env)
        if budget.has_limit:
            logger.info("Memory limit: %s bytes", budget.memory_limit)
        else:
            logger.info("No memory limit detected; using static defaults")

        self.plan = self.config_resolver.resolve(self.env, role=self.role, budget=budget)

        credentials = self.plan.credentials
        secrets = [credentials.root_password]
        if credentials.application is not None:
            secrets.append(credentials.application.password)
        if self.plan.replication is not None:
            secrets.append(self.plan.replication.password)
        self.command_runner.secrets.extend(secret for secret in secrets if secret)

        for setting in self.plan.configuration:
            logger.debug("  %s = %s (%s)", setting.name, setting.value, setting.provenance.value)
        return self.plan

    def detect_init_state(self) -> InitializationState:
        self.init_state = self.init_state_detector.detect(self.paths.data_dir)
        logger.info("Data directory %s is %s", self.paths.data_dir, self.init_state.value)
        return self.init_state

    def write_configuration(self):
        self.filesystem_service.ensure_dir(self.paths.data_dir)
        self.filesystem_service.write_atomic(
            self.paths.defaults_file, self.plan.configuration.render()
        )
        logger.info("Wrote server configuration to %s", self.paths.defaults_file)

    def detect_server_version(self) -> ServerVersion:
        self.server_version = self.daemon_service.detect_version(self.paths.mysqld, self._run_cmd)
        return self.server_version

    def bootstrap_data_dir(self):
        self.daemon_service.bootstrap(self.paths, self.server_version, self._run_cmd)

    def start_local_server(self):
        self.filesystem_service.remove_file(self.paths.local_socket)
        self.local_process = self.daemon_service.start_local(self.paths, self.server_version)
        self.daemon_service.wait_until_ready(
            self.local_process, self.local_admin(), timeout=self.startup_timeout
        )

    def enforce_credentials(self):
        self.credential_enforcer.enforce(self.plan.credentials, self.local_admin())

    def run_init_scripts(self):
        self.init_script_service.apply(
            self.paths.init_dir, self.local_admin(), database=self.plan.credentials.database
        )

    def bootstrap_replication(self):
        link = self.plan.replication
        master_client = self.master_client() if link.role == ReplicationRole.SLAVE else None
        self.replication_bootstrapper.run(
            link,
            self.plan.configuration,
            self.local_admin(),
            ReplicationDialect(self.server_version),
            master_client=master_client,
        )

    def stop_local_server(self):
        if self.local_process is None:
            return
        self.daemon_service.stop_local(self.local_process, self.shutdown_grace_seconds)
        self.local_process = None

    def prepare(self):
        self._run_step("resolve_configuration", self.resolve_configuration)
        self._run_step(
            "detect_init_state", self.detect_init_state, error_class=InitializationError
        )
        self._run_step(
            "write_configuration", self.write_configuration, error_class=InitializationError
        )
        self._run_step(
            "detect_server_version", self.detect_server_version, error_class=InitializationError
        )

        if self.init_state == InitializationState.PRISTINE:
            self._run_step(
                "bootstrap_data_dir", self.bootstrap_data_dir, error_class=InitializationError
            )

        self._run_step(
            "start_local_server", self.start_local_server, error_class=InitializationError
        )
        self._run_step("enforce_credentials", self.enforce_credentials, error_class=CredentialError)

        if self.init_state == InitializationState.PRISTINE:
            self._run_step(
                "run_init_scripts", self.run_init_scripts, error_class=InitializationError
            )

        if self.plan.replication is not None:
            self._run_step(
                "bootstrap_replication", self.bootstrap_replication, error_class=ReplicationError
            )

        self._run_step(
            "stop_local_server", self.stop_local_server, error_class=InitializationError
        )

    def run(self) -> int:
        # The cancel handlers stay in place until the supervisor installs its own.
        previous_handlers = self._install_cancel_handlers()
        try:
            return self._run()
        finally:
            self._restore_handlers(previous_handlers)

    def _run(self) -> int:
        try:
            try:
                logger.info("Starting mysqlboot (role: %s)...", self.role.value)
                self.prepare()
            finally:
                self.stop_local_server()

            cmd = self.supervisor.build_command(
                self.paths.mysqld, self.paths.defaults_file, self.server_args
            )
            return self.supervisor.run(cmd, foreground=self.foreground)
        except OrchestrationCancelled as exc:
            console.print("[bold red]Startup cancelled by signal.[/bold red]")
            logger.info(str(exc))
            return exc.exit_code
        except OrchestratorError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error("Step '%s' failed: %s", self.current_step_name or "startup", exc)
            return exc.exit_code
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            return EXIT_UNEXPECTED
