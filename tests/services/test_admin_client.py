import os
import subprocess

import pytest

from mysqlboot.errors import CommandError
from mysqlboot.services.admin_client import (
    AdminClient,
    account,
    quote_identifier,
    quote_literal,
    quote_option,
)


class FakeRunner:
    def __init__(self, stdout="", returncode=0, error=None):
        self.stdout = stdout
        self.returncode = returncode
        self.error = error
        self.calls = []
        self.option_files = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        for arg in cmd:
            if arg.startswith("--defaults-file="):
                path = arg.split("=", 1)[1]
                with open(path, encoding="utf-8") as file_obj:
                    self.option_files.append((path, file_obj.read()))
        if self.error is not None:
            raise self.error
        return subprocess.CompletedProcess(cmd, self.returncode, stdout=self.stdout, stderr="")


def test_quoting_helpers():
    assert quote_literal("it's") == "'it''s'"
    assert quote_literal("a\\b") == "'a\\\\b'"
    assert quote_identifier("app`db") == "`app``db`"
    assert account("app") == "'app'@'%'"
    assert account("root", "localhost") == "'root'@'localhost'"


def test_client_requires_socket_or_host():
    with pytest.raises(ValueError):
        AdminClient(mysql_client="mysql", run_cmd=FakeRunner())


def test_execute_over_socket_without_password_uses_no_defaults():
    runner = FakeRunner()
    client = AdminClient(mysql_client="mysql", run_cmd=runner, socket="/tmp/local.sock")

    client.execute("SELECT 1;", database="appdb")

    cmd, kwargs = runner.calls[0]
    assert cmd == [
        "mysql",
        "--no-defaults",
        "--protocol=socket",
        "--socket=/tmp/local.sock",
        "--user=root",
        "--batch",
        "appdb",
    ]
    assert kwargs["input"] == "SELECT 1;"
    assert kwargs["check"] is True


def test_password_goes_to_temporary_option_file():
    runner = FakeRunner()
    client = AdminClient(
        mysql_client="mysql",
        run_cmd=runner,
        host="mysql-master",
        port=3307,
        user="repl",
        password="repl-secret",
        get_server_public_key=True,
    )

    client.execute("SELECT 1;")

    cmd, _kwargs = runner.calls[0]
    assert "repl-secret" not in " ".join(cmd)
    assert "--protocol=tcp" in cmd
    assert "--host=mysql-master" in cmd
    assert "--port=3307" in cmd
    assert "--get-server-public-key" in cmd
    path, content = runner.option_files[0]
    assert content == '[client]\npassword="repl-secret"\n'
    assert not os.path.exists(path)
    assert client.target == "repl@mysql-master:3307"


def test_query_parses_batch_output():
    runner = FakeRunner(stdout="File\tPosition\tBinlog_Do_DB\nmysql-bin.000003\t157\tNULL\n")
    client = AdminClient(mysql_client="mysql", run_cmd=runner, socket="/tmp/local.sock")

    rows = client.query("SHOW MASTER STATUS;")

    assert rows == [{"File": "mysql-bin.000003", "Position": "157", "Binlog_Do_DB": None}]


def test_query_returns_empty_list_for_no_rows():
    client = AdminClient(mysql_client="mysql", run_cmd=FakeRunner(stdout=""), socket="/tmp/s")

    assert client.query("SHOW SLAVE STATUS;") == []


def test_batch_output_unescapes_values():
    rows = AdminClient.parse_batch_output("Last_IO_Error\nline one\\nline two\\ttab\\\\\n")

    assert rows == [{"Last_IO_Error": "line one\nline two\ttab\\"}]


def test_ping_reports_failures_without_raising():
    failing = AdminClient(mysql_client="mysql", run_cmd=FakeRunner(returncode=1), socket="/tmp/s")
    missing = AdminClient(
        mysql_client="mysql", run_cmd=FakeRunner(error=CommandError("not found")), socket="/tmp/s"
    )
    healthy = AdminClient(mysql_client="mysql", run_cmd=FakeRunner(), socket="/tmp/s")

    assert failing.ping() is False
    assert missing.ping() is False
    assert healthy.ping() is True


def test_option_file_keeps_comment_characters_and_spaces_in_password():
    runner = FakeRunner(stdout="File\tPosition\nmysql-bin.000001\t4\n")
    client = AdminClient(
        mysql_client="mysql",
        run_cmd=runner,
        host="mysql-master",
        user="repl",
        password="pa#ss word ",
    )

    client.query("SHOW MASTER STATUS;")

    _path, content = runner.option_files[0]
    assert content == '[client]\npassword="pa#ss word "\n'


def test_quote_option_escapes_quotes_and_backslashes():
    assert quote_option('say "hi"') == '"say \\"hi\\""'
    assert quote_option("a\\b") == '"a\\\\b"'
