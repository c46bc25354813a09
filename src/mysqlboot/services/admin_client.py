"""Short-lived admin sessions against the server through the mysql client."""

import contextlib
import os
import tempfile
from typing import Callable, Dict, Iterator, List, Optional

from mysqlboot.constants import MYSQL_PORT, ROOT_USER
from mysqlboot.errors import CommandError


def quote_literal(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "''") + "'"


def quote_identifier(value: str) -> str:
    return "`" + value.replace("`", "``") + "`"


def account(username: str, host: str = "%") -> str:
    return f"{quote_literal(username)}@{quote_literal(host)}"


def quote_option(value: str) -> str:
    """Quotes a value for an option file, where # starts a comment and edges are trimmed."""
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class AdminClient:
    """Runs SQL in batch mode, either over the local socket or against a remote host."""

    def __init__(
        self,
        mysql_client: str,
        run_cmd: Callable,
        socket: Optional[str] = None,
        host: Optional[str] = None,
        port: int = MYSQL_PORT,
        user: str = ROOT_USER,
        password: Optional[str] = None,
        get_server_public_key: bool = False,
        timeout: Optional[float] = 30.0,
    ):
        if not socket and not host:
            raise ValueError("AdminClient needs either a socket or a host")
        self.mysql_client = mysql_client
        self.run_cmd = run_cmd
        self.socket = socket
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.get_server_public_key = get_server_public_key
        self.timeout = timeout

    @property
    def target(self) -> str:
        if self.host:
            return f"{self.user}@{self.host}:{self.port}"
        return f"{self.user}@{self.socket}"

    @contextlib.contextmanager
    def _command(self, extra: List[str]) -> Iterator[List[str]]:
        cmd = [self.mysql_client]
        options_path = None
        if self.password:
            fd, options_path = tempfile.mkstemp(prefix="mysqlboot-client-", suffix=".cnf")
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                file_obj.write(f"[client]\npassword={quote_option(self.password)}\n")
            cmd.append(f"--defaults-file={options_path}")
        else:
            cmd.append("--no-defaults")

        if self.host:
            cmd += ["--protocol=tcp", f"--host={self.host}", f"--port={self.port}"]
            if self.get_server_public_key:
                cmd.append("--get-server-public-key")
        else:
            cmd += ["--protocol=socket", f"--socket={self.socket}"]

        cmd += [f"--user={self.user}", "--batch"] + extra
        try:
            yield cmd
        finally:
            if options_path and os.path.exists(options_path):
                os.remove(options_path)

    def execute(self, sql: str, database: Optional[str] = None):
        extra = [database] if database else []
        with self._command(extra) as cmd:
            self.run_cmd(cmd, check=True, capture_output=True, input=sql, timeout=self.timeout)

    def query(self, sql: str) -> List[Dict[str, Optional[str]]]:
        with self._command([]) as cmd:
            result = self.run_cmd(
                cmd, check=True, capture_output=True, input=sql, timeout=self.timeout
            )
        return self.parse_batch_output(result.stdout or "")

    def ping(self) -> bool:
        with self._command([]) as cmd:
            try:
                result = self.run_cmd(
                    cmd, check=False, capture_output=True, input="SELECT 1;", timeout=self.timeout
                )
            except CommandError:
                return False
        return result.returncode == 0

    @classmethod
    def parse_batch_output(cls, output: str) -> List[Dict[str, Optional[str]]]:
        lines = [line for line in output.splitlines() if line]
        if not lines:
            return []

        header = lines[0].split("\t")
        rows = []
        for line in lines[1:]:
            values = [cls._unescape(value) for value in line.split("\t")]
            rows.append(dict(zip(header, values)))
        return rows

    @staticmethod
    def _unescape(value: str) -> Optional[str]:
        if value == "NULL":
            return None
        if "\\" not in value:
            return value

        replacements = {"n": "\n", "t": "\t", "0": "\0", "\\": "\\"}
        chars = []
        index = 0
        while index < len(value):
            char = value[index]
            if char == "\\" and index + 1 < len(value):
                following = value[index + 1]
                chars.append(replacements.get(following, following))
                index += 2
                continue
            chars.append(char)
            index += 1
        return "".join(chars)
