"""Bootstrap a pooled MySQL connection and auto-migrate registered models."""

from dbconnector.core import *  # noqa: F401,F403
from dbconnector.core import __all__  # noqa: F401

__version__ = "0.1.0"
