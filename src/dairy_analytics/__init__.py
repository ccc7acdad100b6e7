"""Dairy production analytics package following Clean Architecture layering."""

from .core.service import DairyAnalytics
from .core.container import DIContainer

__all__ = [
    "DairyAnalytics",
    "DIContainer",
    "domain",
    "analytics",
    "alerts",
    "caching",
    "core",
    "utils",
]
