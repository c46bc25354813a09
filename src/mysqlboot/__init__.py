"""
mysqlboot - startup orchestrator for containerized MySQL servers
"""

__version__ = "1.0.0"

from .core import Orchestrator
from .errors import OrchestratorError

__all__ = ["Orchestrator", "OrchestratorError"]
