"""Core functionality for confvault."""

from .add import AddManager
from .config import Config
from .diff import DiffManager
from .listing import ListManager
from .migrate import MigrateManager
from .remove import RemoveManager
from .repository import Repository, Session
from .restore import RestoreManager

__all__ = [
    "AddManager",
    "Config",
    "DiffManager",
    "ListManager",
    "MigrateManager",
    "RemoveManager",
    "Repository",
    "RestoreManager",
    "Session",
]
