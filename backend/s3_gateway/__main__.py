import logging
import sys

import uvicorn

from s3_gateway.core.config import get_settings
from s3_gateway.core.errors import ConfigurationError
from s3_gateway.core.logging_config import setup_logging
from s3_gateway.main import create_app

logger = logging.getLogger("s3_gateway")


def main() -> None:
    try:
        settings = get_settings()
    except ConfigurationError as exc:
        setup_logging()
        logger.critical("%s", exc)
        sys.exit(1)

    setup_logging(settings.log_level, settings.log_file)
    logger.info("Configuration loaded: ACCESS_KEY=%s, S3_ENDPOINT=%s", settings.access_key, settings.s3_endpoint)
    app = create_app(settings)

    logger.info("Server is running on %s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
