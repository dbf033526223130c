from __future__ import annotations

from narthex import Config
from narthex.FileSystemGate import FileSystemGate
from narthex.shared.gate import GateLogger, GateErrorHandler

# Lifecycle logger
_log = GateLogger.get("Lifecycle")


@GateErrorHandler.wrap("Lifecycle", "config validation", default_return=False)
def _validate_config() -> bool:
    valid, errors = Config.validate()
    for error in errors:
        _log.warning(error)
    return valid


async def startup(emit_event) -> bool:
    """Initialize subsystems on server startup."""
    GateLogger.set_level(Config.get("NARTHEX_LOG_LEVEL", "INFO"))
    _validate_config()

    if not FileSystemGate.initialize():
        _log.error("FileSystemGate failed to initialize; file routes will return errors")
        return False

    root = FileSystemGate.get_config()["allowed_root"]
    await emit_event("system", "Narthex started", allowed_root=root)
    return True


async def shutdown(emit_event) -> None:
    """Cleanup on server shutdown."""
    await emit_event("system", "Narthex stopping")
    _log.info("Shutdown complete")


__all__ = ["startup", "shutdown"]
