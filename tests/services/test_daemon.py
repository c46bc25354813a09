import subprocess

import pytest
from packaging.version import Version

from mysqlboot.errors import CommandError, InitializationError
from mysqlboot.models import RuntimePaths, ServerVersion
from mysqlboot.services.daemon import DaemonService


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


class FakeProcess:
    pid = 1234

    def __init__(self, returncode=None, stubborn=False):
        self.returncode = returncode
        self.stubborn = stubborn
        self.terminated = False
        self.killed = False

    def poll(self):
        return self.returncode

    def terminate(self):
        self.terminated = True

    def kill(self):
        self.killed = True
        self.returncode = -9

    def wait(self, timeout=None):
        if self.stubborn and not self.killed:
            raise subprocess.TimeoutExpired(cmd="mysqld", timeout=timeout)
        if self.returncode is None:
            self.returncode = 0
        return self.returncode


class FakeAdmin:
    def __init__(self, ready=True):
        self.ready = ready
        self.pings = 0

    def ping(self):
        self.pings += 1
        return self.ready


PATHS = RuntimePaths(
    data_dir="/var/lib/mysql/data",
    defaults_file="/etc/my.cnf",
    config_dir="/cfg",
    init_dir="/init",
    socket="/var/lib/mysql/mysql.sock",
    local_socket="/tmp/local.sock",
    mysqld="mysqld",
    mysql_client="mysql",
)


def _service():
    return DaemonService(logger=DummyLogger(), console=DummyConsole())


def _version_output(stdout):
    def run_cmd(cmd, check=True, capture_output=False, **_kwargs):
        return subprocess.CompletedProcess(cmd, 0, stdout=stdout, stderr="")

    return run_cmd


def test_detect_version_parses_mysql():
    server_version = _service().detect_version(
        "mysqld",
        _version_output("/usr/sbin/mysqld  Ver 8.0.36 for Linux on x86_64 (MySQL Community Server - GPL)\n"),
    )

    assert server_version.version == Version("8.0.36")
    assert server_version.mariadb is False
    assert server_version.uses_replica_syntax
    assert not server_version.uses_binary_log_status


def test_detect_version_parses_mariadb():
    server_version = _service().detect_version(
        "mysqld", _version_output("mysqld  Ver 10.11.6-MariaDB for Linux on x86_64 (MariaDB Server)\n")
    )

    assert server_version.version == Version("10.11.6")
    assert server_version.mariadb is True
    assert not server_version.uses_replica_syntax


def test_detect_version_rejects_unknown_output():
    with pytest.raises(InitializationError, match="Unrecognized server version"):
        _service().detect_version("mysqld", _version_output("something else"))


def test_detect_version_wraps_command_failures():
    def run_cmd(cmd, **_kwargs):
        raise CommandError("Required command not found: mysqld.")

    with pytest.raises(InitializationError, match="Could not determine server version"):
        _service().detect_version("mysqld", run_cmd)


def test_bootstrap_command_depends_on_server_flavor():
    service = _service()

    assert service.bootstrap_command(PATHS, ServerVersion(Version("8.0.36"))) == [
        "mysqld",
        "--defaults-file=/etc/my.cnf",
        "--initialize-insecure",
        "--datadir=/var/lib/mysql/data",
    ]
    assert service.bootstrap_command(PATHS, ServerVersion(Version("10.11.6"), mariadb=True))[0] == (
        "mysql_install_db"
    )


def test_local_command_disables_networking_and_replication_threads():
    service = _service()

    recent = service.local_command(PATHS, ServerVersion(Version("8.0.36")))
    older = service.local_command(PATHS, ServerVersion(Version("5.7.44")))

    assert "--skip-networking" in recent
    assert "--socket=/tmp/local.sock" in recent
    assert recent[-1] == "--skip-replica-start"
    assert older[-1] == "--skip-slave-start"


def test_wait_until_ready_returns_when_ping_succeeds():
    admin = FakeAdmin(ready=True)

    _service().wait_until_ready(FakeProcess(), admin, timeout=5, interval=0)

    assert admin.pings == 1


def test_wait_until_ready_times_out():
    with pytest.raises(InitializationError, match="did not accept local connections"):
        _service().wait_until_ready(FakeProcess(), FakeAdmin(ready=False), timeout=0, interval=0)


def test_wait_until_ready_fails_when_server_exits():
    with pytest.raises(InitializationError, match="exited with code 1"):
        _service().wait_until_ready(FakeProcess(returncode=1), FakeAdmin(), timeout=5, interval=0)


def test_stop_local_terminates_then_kills_after_grace():
    process = FakeProcess(stubborn=True)

    returncode = _service().stop_local(process, grace_seconds=0.1)

    assert process.terminated
    assert process.killed
    assert returncode == -9


def test_stop_local_is_a_no_op_for_exited_process():
    process = FakeProcess(returncode=0)

    assert _service().stop_local(process, grace_seconds=1) == 0
    assert not process.terminated
