"""Routers package."""

from . import (
    health,
    programs,
    categories,
    languages,
)
