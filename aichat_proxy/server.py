"""Process runner for the relay.

Validates configuration, writes the PID file used by external supervisors,
serves the FastAPI app with uvicorn and removes the PID file on exit.
Unhandled failures anywhere in the process are fatal: they are logged and
the server is shut down with exit code 1.
"""

import asyncio
import os
import sys
from pathlib import Path

import uvicorn
from pydantic import ValidationError as SettingsValidationError

from aichat_proxy.config.settings import Settings, get_settings, validate_settings
from aichat_proxy.errors import ConfigurationError
from aichat_proxy.logging.audit import get_audit_logger, setup_logging
from aichat_proxy.main import app
from aichat_proxy.providers.registry import get_registry


def load_settings() -> Settings:
    """Load settings from the environment and validate them.

    Raises:
        ConfigurationError: values are missing, unparseable or out of range.
    """
    try:
        settings = get_settings()
    except SettingsValidationError as e:
        raise ConfigurationError([
            f"{'.'.join(str(part) for part in err['loc']).upper()}: {err['msg']}"
            for err in e.errors()
        ])
    return validate_settings(settings)


def write_pid_file(path: str) -> bool:
    """Write the current PID. Failure is logged, not fatal."""
    pid = os.getpid()
    try:
        Path(path).write_text(str(pid), encoding="utf-8")
    except OSError as e:
        get_audit_logger().error(
            "Failed to write PID file",
            extra={"audit_data": {"pid_file": path, "details": str(e)}},
        )
        return False
    get_audit_logger().info(
        "PID saved", extra={"audit_data": {"pid": pid, "pid_file": path}}
    )
    return True


def remove_pid_file(path: str) -> None:
    pid_path = Path(path)
    if not pid_path.exists():
        return
    try:
        pid_path.unlink()
    except OSError as e:
        get_audit_logger().error(
            "Failed to remove PID file",
            extra={"audit_data": {"pid_file": path, "details": str(e)}},
        )
        return
    get_audit_logger().info("PID file removed", extra={"audit_data": {"pid_file": path}})


class ProxyServer:
    """uvicorn server with a bounded graceful shutdown and a fatal-error hook."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.exit_code = 0
        config = uvicorn.Config(
            app,
            host=settings.host,
            port=settings.port,
            log_config=None,
            timeout_graceful_shutdown=settings.shutdown_timeout_seconds,
        )
        self._server = uvicorn.Server(config)

    def fatal(self, exc: BaseException) -> None:
        """Stop serving immediately and exit with a failure status."""
        get_audit_logger().critical("Fatal error, forcing shutdown", exc_info=exc)
        self.exit_code = 1
        self._server.should_exit = True
        self._server.force_exit = True

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exc = context.get("exception")
        if exc is None:
            exc = RuntimeError(context.get("message", "Unhandled asyncio failure"))
        self.fatal(exc)

    async def serve(self) -> int:
        asyncio.get_running_loop().set_exception_handler(self._handle_loop_exception)
        app.state.on_fatal = self.fatal
        try:
            await self._server.serve()
        finally:
            app.state.on_fatal = None
        return self.exit_code


def main() -> None:
    """Console entry point: ``aichat-proxy``."""
    try:
        settings = load_settings()
    except ConfigurationError as e:
        # Logging is not configured yet; the last-resort handler writes to stderr
        get_audit_logger().critical(str(e))
        sys.exit(1)

    setup_logging()
    logger = get_audit_logger()
    logger.info(
        "Configuration validated",
        extra={"audit_data": {"available_providers": get_registry().list_available()}},
    )

    write_pid_file(settings.pid_file)
    logger.info(
        "AI Chat Proxy starting",
        extra={"audit_data": {"host": settings.host, "port": settings.port, "pid": os.getpid()}},
    )
    try:
        exit_code = asyncio.run(ProxyServer(settings).serve())
    finally:
        remove_pid_file(settings.pid_file)

    logger.info("Process exiting", extra={"audit_data": {"exit_code": exit_code}})
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
