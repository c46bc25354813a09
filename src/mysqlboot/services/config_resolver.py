"""Configuration resolution for mysqlboot.

Settings come from four layers, merged in this order (later wins):
built-in defaults, memory auto-tuning, the environment, and user supplied
``*.cnf`` fragments. Fragments may reference resolved values as ``$VAR`` or
``${VAR}`` before they are parsed.
"""

import configparser
import os
import re
import socket
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from mysqlboot.constants import (
    BINLOG_BASENAME,
    MYSQL_PORT,
    PID_FILE,
    RELAY_LOG_BASENAME,
)
from mysqlboot.errors import ValidationError
from mysqlboot.errors_catalog import actionable_error
from mysqlboot.models import (
    PROVENANCE_RANK,
    Configuration,
    Provenance,
    ReplicationLink,
    ReplicationRole,
    ResourceBudget,
    RuntimePaths,
    Setting,
    StartupPlan,
    ValidationRule,
)
from mysqlboot.schema import SETTINGS_SCHEMA, SettingKind, env_value
from mysqlboot.services.memory_tuner import MemoryTuner
from mysqlboot.services.validation import EnvironmentValidator

SERVER_SECTION = "mysqld"

Options = Tuple[Tuple[str, Optional[str]], ...]


@dataclass(frozen=True)
class ConfigFragment:
    source: str
    sections: Tuple[Tuple[str, Options], ...]


class ConfigResolver:
    """Builds the single validated configuration used for one start."""

    VARIABLE_PATTERN = re.compile(r"\$(?:\{([A-Za-z_][A-Za-z0-9_]*)\}|([A-Za-z_][A-Za-z0-9_]*))")

    def __init__(
        self,
        paths: RuntimePaths,
        logger,
        validator: Optional[EnvironmentValidator] = None,
        tuner: Optional[MemoryTuner] = None,
        socket_module=socket,
    ):
        self.paths = paths
        self.logger = logger
        self.validator = validator or EnvironmentValidator()
        self.tuner = tuner or MemoryTuner()
        self.socket = socket_module

    def resolve(
        self,
        env: Mapping[str, str],
        role: ReplicationRole = ReplicationRole.NONE,
        budget: ResourceBudget = ResourceBudget(),
        fragments: Optional[Sequence[ConfigFragment]] = None,
    ) -> StartupPlan:
        credentials, link = self.validator.validate(env, role)
        server_id = self._server_id(env) if link else None

        explicit = {
            entry.setting
            for entry in SETTINGS_SCHEMA
            if entry.auto_tunable and env_value(env, entry.variable) is not None
        }
        tuned = self.tuner.tune(budget.memory_limit, overrides=explicit)
        if tuned:
            self.logger.debug("Auto-tuned settings for %s bytes: %s", budget.memory_limit, tuned)

        env_settings = self.env_settings(env)
        if link:
            env_settings.update(self.role_settings(env, link, server_id))

        defaults = self.defaults()
        if fragments is None:
            context = self.substitution_context(env, defaults, tuned, env_settings)
            fragments = self.load_fragments(self.paths.config_dir, context)

        configuration = self.merge(defaults, tuned, env_settings, fragments)
        return StartupPlan(
            configuration=configuration,
            credentials=credentials,
            role=role,
            replication=link,
            budget=budget,
        )

    def defaults(self) -> Dict[str, Optional[str]]:
        settings: Dict[str, Optional[str]] = {
            "datadir": self.paths.data_dir,
            "socket": self.paths.socket,
            "pid_file": PID_FILE,
            "port": str(MYSQL_PORT),
            "skip_name_resolve": None,
            "general_log_file": os.path.join(self.paths.data_dir, "mysql-query.log"),
        }
        for entry in SETTINGS_SCHEMA:
            settings[entry.setting] = entry.default
        return settings

    def env_settings(self, env: Mapping[str, str]) -> Dict[str, Optional[str]]:
        settings: Dict[str, Optional[str]] = {}
        for entry in SETTINGS_SCHEMA:
            value = env_value(env, entry.variable)
            if value is not None:
                settings[entry.setting] = value.upper() if entry.kind == SettingKind.SIZE else value
        return settings

    def role_settings(
        self, env: Mapping[str, str], link: ReplicationLink, server_id: int
    ) -> Dict[str, Optional[str]]:
        settings: Dict[str, Optional[str]] = {
            "server_id": str(server_id),
            "log_bin": os.path.join(self.paths.data_dir, BINLOG_BASENAME),
            "binlog_format": link.binlog_format.value.upper(),
        }
        if link.role == ReplicationRole.SLAVE:
            settings["relay_log"] = os.path.join(self.paths.data_dir, RELAY_LOG_BASENAME)
            settings["report_host"] = env_value(env, "MYSQL_REPORT_HOST") or self._report_host()
        return settings

    def merge(
        self,
        defaults: Mapping[str, Optional[str]],
        tuned: Mapping[str, Optional[str]],
        env_settings: Mapping[str, Optional[str]],
        fragments: Sequence[ConfigFragment],
    ) -> Configuration:
        merged: Dict[str, Setting] = {}
        extra: Dict[str, Dict[str, Optional[str]]] = {}

        def apply(name: str, value: Optional[str], provenance: Provenance):
            current = merged.get(name)
            if current and PROVENANCE_RANK[current.provenance] > PROVENANCE_RANK[provenance]:
                return
            merged[name] = Setting(name=name, value=value, provenance=provenance)

        layers = (
            (defaults, Provenance.DEFAULT),
            (tuned, Provenance.AUTO_TUNED),
            (env_settings, Provenance.ENV),
        )
        for layer, provenance in layers:
            for name, value in layer.items():
                apply(name, value, provenance)

        for fragment in fragments:
            for section, options in fragment.sections:
                if section == SERVER_SECTION:
                    for name, value in options:
                        apply(name, value, Provenance.USER_FILE)
                    continue
                extra.setdefault(section, {}).update(dict(options))

        return Configuration(
            settings=tuple(merged.values()),
            extra_sections=tuple(
                (section, tuple(options.items())) for section, options in extra.items()
            ),
        )

    def substitution_context(
        self,
        env: Mapping[str, str],
        defaults: Mapping[str, Optional[str]],
        tuned: Mapping[str, Optional[str]],
        env_settings: Mapping[str, Optional[str]],
    ) -> Dict[str, str]:
        context = dict(env)
        for entry in SETTINGS_SCHEMA:
            for layer in (env_settings, tuned, defaults):
                if entry.setting in layer:
                    context[entry.variable] = layer[entry.setting] or ""
                    break
        context.setdefault("MYSQL_DATADIR", self.paths.data_dir)
        return context

    def substitute(self, text: str, context: Mapping[str, str]) -> str:
        def replace(match):
            name = match.group(1) or match.group(2)
            return context.get(name, "")

        return self.VARIABLE_PATTERN.sub(replace, text)

    def load_fragments(self, config_dir: str, context: Mapping[str, str]) -> List[ConfigFragment]:
        directory = Path(config_dir)
        if not directory.is_dir():
            return []

        fragments = []
        for path in sorted(directory.glob("*.cnf")):
            if not path.is_file():
                continue
            self.logger.info("Applying configuration fragment %s", path)
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as exc:
                raise ValidationError(
                    ValidationRule.INVALID_FRAGMENT,
                    actionable_error(ValidationRule.INVALID_FRAGMENT, path=path, reason=exc),
                ) from exc
            fragments.append(self.parse_fragment(self.substitute(text, context), source=str(path)))
        return fragments

    def parse_fragment(self, text: str, source: str = "<string>") -> ConfigFragment:
        parser = configparser.ConfigParser(
            allow_no_value=True,
            strict=False,
            interpolation=None,
            delimiters=("=",),
            comment_prefixes=("#", ";"),
            inline_comment_prefixes=("#",),
        )
        parser.optionxform = str

        lines = []
        for line in text.splitlines():
            if line.lstrip().startswith("!"):
                self.logger.debug("Ignoring include directive in %s: %s", source, line.strip())
                continue
            lines.append(line)

        try:
            parser.read_string("\n".join(lines), source=source)
        except configparser.Error as exc:
            raise ValidationError(
                ValidationRule.INVALID_FRAGMENT,
                actionable_error(ValidationRule.INVALID_FRAGMENT, path=source, reason=exc),
            ) from exc

        sections = []
        for section in parser.sections():
            options = tuple(
                (self.normalize_option(name), None if value is None else value.strip())
                for name, value in parser.items(section, raw=True)
            )
            sections.append((section.strip(), options))
        return ConfigFragment(source=source, sections=tuple(sections))

    @staticmethod
    def normalize_option(name: str) -> str:
        return name.strip().replace("-", "_")

    def _server_id(self, env: Mapping[str, str]) -> int:
        explicit = env_value(env, "MYSQL_SERVER_ID")
        if explicit is not None:
            if not SettingKind.INTEGER.accepts(explicit) or int(explicit) < 1:
                raise ValidationError(
                    ValidationRule.INVALID_SETTING,
                    actionable_error(
                        ValidationRule.INVALID_SETTING,
                        variable="MYSQL_SERVER_ID",
                        value=explicit,
                        expected="a positive integer",
                    ),
                )
            return int(explicit)
        hostname = self.socket.gethostname()
        return zlib.crc32(hostname.encode("utf-8")) % 4294967294 + 1

    def _report_host(self) -> str:
        hostname = self.socket.gethostname()
        try:
            return self.socket.gethostbyname(hostname)
        except OSError:
            return hostname
