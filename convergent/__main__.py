"""Run the order service: python -m convergent."""

import uvicorn

from convergent.api import create_app
from convergent.config import Settings
from convergent.log import configure_logging, get_logger


def main() -> None:
    settings = Settings.from_env()
    configure_logging(json_output=settings.log_json, log_level=settings.log_level)
    get_logger(__name__).info("convergent.starting", host=settings.host, port=settings.port)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
