"""Domain errors for mysqlboot."""

from mysqlboot.constants import (
    EXIT_CANCELLED,
    EXIT_CREDENTIALS,
    EXIT_INITIALIZATION,
    EXIT_REPLICATION,
    EXIT_UNEXPECTED,
    EXIT_VALIDATION,
)


class OrchestratorError(RuntimeError):
    """Raised when startup cannot continue safely."""

    exit_code = EXIT_UNEXPECTED


class ValidationError(OrchestratorError):
    """Malformed, missing or conflicting environment input."""

    exit_code = EXIT_VALIDATION

    def __init__(self, rule, message: str):
        super().__init__(message)
        self.rule = rule


class InitializationError(OrchestratorError):
    """The data directory could not be bootstrapped or the engine did not come up."""

    exit_code = EXIT_INITIALIZATION


class CredentialError(OrchestratorError):
    """Account reconciliation failed or the admin connection was unreachable."""

    exit_code = EXIT_CREDENTIALS


class ReplicationError(OrchestratorError):
    """The replication link could not be established within the retry budget."""

    exit_code = EXIT_REPLICATION


class CommandError(OrchestratorError):
    """An external command failed, timed out or was missing."""

    def __init__(self, message: str, returncode=None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class OrchestrationCancelled(OrchestratorError):
    """A termination signal arrived before the daemon was handed control."""

    exit_code = EXIT_CANCELLED
