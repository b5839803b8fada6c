# weam/__main__.py
import logging
import sys

import uvicorn

from weam.config import ConfigError, get_settings, validate_settings
from weam.db import SchemaError
from weam.main import create_app

logger = logging.getLogger("weam.main")


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        validate_settings(settings)
        app = create_app(settings)
    except (ConfigError, SchemaError) as e:
        logger.error("Startup failed: %s", e)
        sys.exit(1)

    logger.info(
        "WEAM listening on http://%s:%s (env=%s, db=%s)",
        settings.host,
        settings.port,
        settings.env,
        settings.database_file,
    )
    # uvicorn handles SIGINT/SIGTERM: stop accepting, drain, then run lifespan shutdown
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        timeout_keep_alive=70,
        timeout_graceful_shutdown=settings.shutdown_grace_seconds,
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
