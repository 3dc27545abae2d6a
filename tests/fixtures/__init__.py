"""Shared pytest fixtures."""

from .auth import *  # noqa: F401,F403
from .core import *  # noqa: F401,F403
from .lookup import *  # noqa: F401,F403
