"""
Shared utilities for Narthex.

Provides access to common functionality used across Gate implementations.
"""

from narthex.shared.gate import (
    GateLogger,
    GateErrorHandler,
    ConfigLoader,
    PathUtils,
    build_health_status,
)

__all__ = [
    "GateLogger",
    "GateErrorHandler",
    "ConfigLoader",
    "PathUtils",
    "build_health_status",
]
