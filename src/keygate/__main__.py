"""Command-line entry point: ``keygate`` or ``python -m keygate``."""

import structlog
import uvicorn

from keygate.config import Settings, get_settings
from keygate.logging import setup_logging

logger = structlog.get_logger()


def uvicorn_options(settings: Settings) -> dict[str, object]:
    """Keyword arguments for ``uvicorn.run``."""
    return {
        "host": settings.host,
        "port": settings.port,
        "reload": settings.debug,
        "log_level": settings.log_level.lower(),
        # Requests are counted by the metrics middleware
        "access_log": False,
        # Client identity is resolved by keygate.app.client_identity
        "proxy_headers": False,
        "server_header": False,
    }


def main() -> None:
    """Serve the gateway."""
    settings = get_settings()
    setup_logging(settings)

    if not settings.secret_key:
        logger.warning("serving_without_signing_secret", setting="KEYGATE_SECRET_KEY")
    logger.info("keygate_serving", host=settings.host, port=settings.port, reload=settings.debug)

    uvicorn.run("keygate.app:app", **uvicorn_options(settings))  # type: ignore[arg-type]


if __name__ == "__main__":
    main()
