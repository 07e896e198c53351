"""Pydantic v2 schemas shared between the API, CLI and frontend types."""

from .datasets import *  # noqa: F401,F403
from .scenario import *  # noqa: F401,F403
