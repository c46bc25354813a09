import pytest

from mysqlboot.constants import MB
from mysqlboot.errors import ValidationError
from mysqlboot.models import (
    Provenance,
    ReplicationRole,
    ResourceBudget,
    RuntimePaths,
    ValidationRule,
)
from mysqlboot.services.config_resolver import ConfigResolver


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None


class FakeSocketModule:
    def __init__(self, hostname="mysql-0", address="10.0.0.7"):
        self.hostname = hostname
        self.address = address

    def gethostname(self):
        return self.hostname

    def gethostbyname(self, _hostname):
        return self.address


def _paths(tmp_path):
    return RuntimePaths(
        data_dir=str(tmp_path / "data"),
        defaults_file=str(tmp_path / "my.cnf"),
        config_dir=str(tmp_path / "cfg"),
        init_dir=str(tmp_path / "init"),
        socket=str(tmp_path / "mysql.sock"),
        local_socket=str(tmp_path / "local.sock"),
        mysqld="mysqld",
        mysql_client="mysql",
    )


def _resolver(tmp_path):
    return ConfigResolver(
        paths=_paths(tmp_path), logger=DummyLogger(), socket_module=FakeSocketModule()
    )


def test_resolve_uses_defaults_without_limit_or_environment(tmp_path):
    plan = _resolver(tmp_path).resolve({})
    configuration = plan.configuration

    assert configuration.get("max_connections") == "151"
    assert configuration.get("innodb_buffer_pool_size") == "32M"
    assert configuration.get("datadir") == str(tmp_path / "data")
    assert configuration.provenance_of("max_connections") == Provenance.DEFAULT
    assert "skip_name_resolve" in configuration
    assert "server_id" not in configuration
    assert plan.replication is None


def test_resolve_applies_auto_tuning_from_budget(tmp_path):
    plan = _resolver(tmp_path).resolve({}, budget=ResourceBudget(memory_limit=256 * MB))
    configuration = plan.configuration

    assert configuration.get("innodb_buffer_pool_size") == "128M"
    assert configuration.get("key_buffer_size") == "25M"
    assert configuration.provenance_of("innodb_buffer_pool_size") == Provenance.AUTO_TUNED


def test_resolve_prefers_explicit_environment_over_auto_tuning(tmp_path):
    plan = _resolver(tmp_path).resolve(
        {"MYSQL_INNODB_BUFFER_POOL_SIZE": "64m"},
        budget=ResourceBudget(memory_limit=256 * MB),
    )
    configuration = plan.configuration

    assert configuration.get("innodb_buffer_pool_size") == "64M"
    assert configuration.provenance_of("innodb_buffer_pool_size") == Provenance.ENV
    assert configuration.get("read_buffer_size") == "12M"


def test_config_fragment_overrides_environment(tmp_path):
    config_dir = tmp_path / "cfg"
    config_dir.mkdir()
    (config_dir / "50-tuning.cnf").write_text(
        "[mysqld]\nmax_connections = 500\nmax-allowed-packet = 64M\n", encoding="utf-8"
    )

    plan = _resolver(tmp_path).resolve({"MYSQL_MAX_CONNECTIONS": "300"})
    configuration = plan.configuration

    assert configuration.get("max_connections") == "500"
    assert configuration.provenance_of("max_connections") == Provenance.USER_FILE
    assert configuration.get("max_allowed_packet") == "64M"


def test_config_fragments_apply_in_name_order(tmp_path):
    config_dir = tmp_path / "cfg"
    config_dir.mkdir()
    (config_dir / "20-late.cnf").write_text("[mysqld]\ntable_open_cache = 800\n", encoding="utf-8")
    (config_dir / "10-early.cnf").write_text("[mysqld]\ntable_open_cache = 600\n", encoding="utf-8")
    (config_dir / "notes.txt").write_text("[mysqld]\ntable_open_cache = 1\n", encoding="utf-8")

    plan = _resolver(tmp_path).resolve({})

    assert plan.configuration.get("table_open_cache") == "800"


def test_config_fragment_substitutes_resolved_values(tmp_path):
    config_dir = tmp_path / "cfg"
    config_dir.mkdir()
    (config_dir / "60-vars.cnf").write_text(
        "[mysqld]\n"
        "innodb_buffer_pool_instances = 1\n"
        "slow_query_log_file = ${MYSQL_DATADIR}/slow.log\n"
        "table_definition_cache = $MYSQL_MAX_CONNECTIONS\n"
        "innodb_log_file_size = $UNDEFINED_VARIABLE\n",
        encoding="utf-8",
    )

    plan = _resolver(tmp_path).resolve({"MYSQL_MAX_CONNECTIONS": "300"})
    configuration = plan.configuration

    assert configuration.get("slow_query_log_file") == f"{tmp_path / 'data'}/slow.log"
    assert configuration.get("table_definition_cache") == "300"
    assert configuration.get("innodb_log_file_size") == ""


def test_config_fragment_keeps_other_sections_and_flags(tmp_path):
    config_dir = tmp_path / "cfg"
    config_dir.mkdir()
    (config_dir / "70-client.cnf").write_text(
        "!includedir /etc/my.cnf.d\n"
        "[mysqld]\n"
        "skip-log-bin\n"
        "# comment\n"
        "[client]\n"
        "default-character-set = utf8mb4\n",
        encoding="utf-8",
    )

    plan = _resolver(tmp_path).resolve({})
    configuration = plan.configuration
    rendered = configuration.render()

    assert "skip_log_bin" in configuration
    assert configuration.get("skip_log_bin") is None
    assert configuration.extra_sections == (("client", (("default_character_set", "utf8mb4"),)),)
    assert "[client]\ndefault_character_set = utf8mb4\n" in rendered
    assert "\nskip_log_bin\n" in rendered


def test_invalid_fragment_fails_validation(tmp_path):
    config_dir = tmp_path / "cfg"
    config_dir.mkdir()
    (config_dir / "bad.cnf").write_text("max_connections = 10\n", encoding="utf-8")

    with pytest.raises(ValidationError) as exc_info:
        _resolver(tmp_path).resolve({})

    assert exc_info.value.rule == ValidationRule.INVALID_FRAGMENT
    assert "bad.cnf" in str(exc_info.value)


def test_resolve_validates_before_reading_fragments(tmp_path):
    config_dir = tmp_path / "cfg"
    config_dir.mkdir()
    (config_dir / "bad.cnf").write_text("not a fragment\n", encoding="utf-8")

    with pytest.raises(ValidationError) as exc_info:
        _resolver(tmp_path).resolve({"MYSQL_AIO": "maybe"})

    assert exc_info.value.rule == ValidationRule.INVALID_SETTING


def test_master_role_enables_binary_logging(tmp_path):
    plan = _resolver(tmp_path).resolve(
        {
            "MYSQL_MASTER_USER": "repl",
            "MYSQL_MASTER_PASSWORD": "repl-secret",
            "MYSQL_SERVER_ID": "7",
        },
        role=ReplicationRole.MASTER,
    )
    configuration = plan.configuration

    assert configuration.get("server_id") == "7"
    assert configuration.get("log_bin") == str(tmp_path / "data" / "mysql-bin")
    assert configuration.get("binlog_format") == "STATEMENT"
    assert "relay_log" not in configuration
    assert plan.replication.role == ReplicationRole.MASTER


def test_slave_role_derives_server_id_and_report_host(tmp_path):
    env = {
        "MYSQL_MASTER_USER": "repl",
        "MYSQL_MASTER_PASSWORD": "repl-secret",
        "MYSQL_MASTER_SERVICE_NAME": "mysql-master",
        "MYSQL_BINLOG_FORMAT": "row",
    }

    first = _resolver(tmp_path).resolve(env, role=ReplicationRole.SLAVE).configuration
    second = _resolver(tmp_path).resolve(env, role=ReplicationRole.SLAVE).configuration

    assert first.get("server_id") == second.get("server_id")
    assert 1 <= int(first.get("server_id")) <= 4294967294
    assert first.get("binlog_format") == "ROW"
    assert first.get("relay_log") == str(tmp_path / "data" / "mysql-relay-bin")
    assert first.get("report_host") == "10.0.0.7"


def test_invalid_server_id_is_rejected(tmp_path):
    with pytest.raises(ValidationError) as exc_info:
        _resolver(tmp_path).resolve(
            {"MYSQL_MASTER_USER": "repl", "MYSQL_MASTER_PASSWORD": "x", "MYSQL_SERVER_ID": "0"},
            role=ReplicationRole.MASTER,
        )

    assert exc_info.value.rule == ValidationRule.INVALID_SETTING


def test_render_writes_single_mysqld_section(tmp_path):
    rendered = _resolver(tmp_path).resolve({"MYSQL_MAX_CONNECTIONS": "300"}).configuration.render()

    assert rendered.startswith("# Generated by mysqlboot")
    assert rendered.count("[mysqld]") == 1
    assert "max_connections = 300\n" in rendered
