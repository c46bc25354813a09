"""Static values shared across mysqlboot."""

KB = 1024
MB = 1024 * KB

DATA_DIR = "/var/lib/mysql/data"
CONFIG_DIR = "/opt/app-root/src/mysql-cfg"
INIT_DIR = "/opt/app-root/src/mysql-init"
SOCKET_PATH = "/var/lib/mysql/mysql.sock"
LOCAL_SOCKET_PATH = "/tmp/mysqlboot-local.sock"
PID_FILE = "/var/lib/mysql/mysqld.pid"
DEFAULTS_FILE = "/etc/my.cnf"
RUNTIME_CONFIG_FILE = "/etc/mysqlboot.yml"
MYSQLD_BINARY = "mysqld"
MYSQL_CLIENT_BINARY = "mysql"
MYSQL_PORT = 3306

ROOT_USER = "root"
USERNAME_MAX_LENGTH = 32
DATABASE_MAX_LENGTH = 64
IDENTIFIER_PATTERN = r"^[A-Za-z0-9_]+$"
FORBIDDEN_PASSWORD_CHARS = ("'", "\\")

# Values at or above this are treated as "no cgroup limit".
NO_MEMORY_LIMIT = 9223372036854771712

# (my.cnf setting, percentage of the memory limit)
MEMORY_TUNING_TABLE = (
    ("key_buffer_size", 10),
    ("read_buffer_size", 5),
    ("innodb_buffer_pool_size", 50),
    ("innodb_log_file_size", 15),
    ("innodb_log_buffer_size", 15),
)

ENGINE_MANAGED_ENTRIES = ("mysql", "mysql.ibd", "ibdata1", "auto.cnf")
IGNORED_DATA_DIR_ENTRIES = ("lost+found",)

BINLOG_BASENAME = "mysql-bin"
RELAY_LOG_BASENAME = "mysql-relay-bin"

EXIT_UNEXPECTED = 1
EXIT_VALIDATION = 2
EXIT_INITIALIZATION = 3
EXIT_CREDENTIALS = 4
EXIT_REPLICATION = 5
EXIT_CANCELLED = 143

DEFAULT_STARTUP_TIMEOUT = 60.0
DEFAULT_SHUTDOWN_GRACE_SECONDS = 30.0
DEFAULT_RETRY_COUNT = 10
DEFAULT_RETRY_BACKOFF_SECONDS = 2.0
DEFAULT_RETRY_BACKOFF_MAX_SECONDS = 30.0
DEFAULT_STATUS_POLL_COUNT = 10
DEFAULT_STATUS_POLL_INTERVAL = 1.0
