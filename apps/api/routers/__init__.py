"""Routers package."""

from . import (
    health,
    sync,
    reporting,
    analytics,
)
