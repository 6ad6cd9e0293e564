"""Application package.

Small explicit initializer for ``booking.app``: exposes the database helpers
and ORM models used by the API and migrations.
"""

from .core import db
from .domain import models

__all__ = ["db", "models"]
