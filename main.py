"""
Main entrypoint: MatchGuard API server.

Validator and commitment store are built from MATCHGUARD_* settings by
create_app(); receipts are polled in a background thread inside the app
lifespan.

Env: MATCHGUARD_DB_URL, MATCHGUARD_PENDING_TIMEOUT_SEC, API_HOST, API_PORT, LOG_LEVEL, etc.

Equivalent: uvicorn backend_matchguard.api_server.app:app --host 0.0.0.0 --port 8000
"""

import os

# Configure structured JSON logging before other imports that may log
from backend_matchguard.matchguard_logging import get_logger

logger = get_logger("main")


def main() -> None:
    """Build the app from settings and run it with uvicorn in the main thread."""
    from backend_matchguard.api_server.server import create_app
    from backend_matchguard.config import get_settings
    import uvicorn

    settings = get_settings()
    app = create_app(settings)
    logger.info(
        "main_server_starting",
        host=settings.api_host,
        port=settings.api_port,
        db="sql" if settings.db_url else "memory",
    )
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=os.getenv("LOG_LEVEL", "info").lower())


if __name__ == "__main__":
    main()
