"""SQLAlchemy models package (catalog database)."""

from .common import StatusTransitionError  # noqa: F401
from .operations import OperationLog  # noqa: F401
