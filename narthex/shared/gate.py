"""
Shared Gate utilities for Narthex.

- GateLogger: loggers under the "narthex" namespace
- GateErrorHandler: log-and-fallback decorator for best-effort steps
- build_health_status: the health dict every gate reports
- ConfigLoader: JSON file into a Pydantic model
- PathUtils: root containment check
"""

from __future__ import annotations

import json
import logging
import os
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel


# =============================================================================
# GateLogger
# =============================================================================


class GateLogger:
    """
    Namespaced loggers for gates and the HTTP layer.

    The first call attaches one stream handler to the "narthex" logger
    unless the host application already configured one.
    """

    _loggers: Dict[str, logging.Logger] = {}
    _configured = False

    @classmethod
    def _ensure_configured(cls):
        if cls._configured:
            return

        base = logging.getLogger("narthex")
        if not base.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("[%(name)s] %(levelname)s: %(message)s"))
            base.addHandler(handler)
            base.setLevel(logging.INFO)

        cls._configured = True

    @classmethod
    def get(cls, component: str) -> logging.Logger:
        """Logger named narthex.<component>."""
        cls._ensure_configured()

        name = f"narthex.{component}"
        if name not in cls._loggers:
            cls._loggers[name] = logging.getLogger(name)
        return cls._loggers[name]

    @classmethod
    def set_level(cls, level: Union[int, str], component: Optional[str] = None):
        """
        Set the level for one component, or for the whole namespace.

        Unknown level names fall back to INFO.
        """
        if isinstance(level, str):
            level = logging.getLevelName(level.upper())
            if not isinstance(level, int):
                level = logging.INFO

        if component:
            cls.get(component).setLevel(level)
        else:
            cls._ensure_configured()
            logging.getLogger("narthex").setLevel(level)


# =============================================================================
# GateErrorHandler
# =============================================================================


class GateErrorHandler:
    """Logging for steps whose callers only need a fallback value."""

    @staticmethod
    def handle(component: str, operation: str, exception: Exception, default_return: Any = None) -> Any:
        GateLogger.get(component).error(f"{operation} failed: {exception}")
        return default_return

    @staticmethod
    def wrap(component: str, operation: str, default_return: Any = None):
        """
        Decorator: log any exception from the wrapped call and return
        default_return instead.
        """
        def decorator(func: Callable) -> Callable:
            @wraps(func)
            def wrapper(*args, **kwargs):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    return GateErrorHandler.handle(component, operation, e, default_return)
            return wrapper
        return decorator


# =============================================================================
# Health
# =============================================================================


def build_health_status(
    gate_name: str,
    initialized: bool,
    dependencies: List[str],
    checks: Dict[str, bool],
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build the health dict served by /health.

    A gate is healthy when it is initialized and every check passed.
    """
    return {
        "gate": gate_name,
        "healthy": initialized and all(checks.values()),
        "initialized": initialized,
        "dependencies": dependencies,
        "checks": checks,
        "details": details or {},
    }


# =============================================================================
# ConfigLoader
# =============================================================================


ModelT = TypeVar("ModelT", bound=BaseModel)


class ConfigLoader:
    """JSON config files for gate settings."""

    @staticmethod
    def load(
        path: Union[str, Path],
        model_class: Type[ModelT],
        create_default: bool = True,
    ) -> Optional[ModelT]:
        """
        Load a JSON file into a Pydantic model.

        Returns:
            The model; model_class() for a missing file when create_default
            is set; None for a missing file otherwise, or an unreadable or
            invalid one
        """
        path = Path(path)

        if not path.exists():
            return model_class() if create_default else None

        try:
            with open(path, "r", encoding="utf-8") as f:
                return model_class.model_validate(json.load(f))
        except (OSError, ValueError) as e:
            # json.JSONDecodeError and pydantic.ValidationError are ValueErrors
            GateLogger.get("ConfigLoader").error(f"Failed to load config from {path}: {e}")
            return None


# =============================================================================
# PathUtils
# =============================================================================


class PathUtils:
    """Path helpers shared by the gates."""

    @staticmethod
    def is_within(path: Union[str, Path], root: Union[str, Path]) -> bool:
        """
        Lexical containment check: is `path` equal to or below `root`?

        Both arguments must already be absolute and normalized.
        """
        try:
            return os.path.commonpath([str(root), str(path)]) == str(root)
        except ValueError:
            # Different drives on Windows
            return False
