"""Run the API with uvicorn: ``python -m order_service``."""

import uvicorn

from . import config


def main() -> None:
    uvicorn.run(
        "order_service.main:app",
        host=config.SERVER_HOST,
        port=config.SERVER_PORT,
        log_level=config.LOG_LEVEL,
    )


if __name__ == "__main__":
    main()
