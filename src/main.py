"""Start the exporter's HTTP server."""

import uvicorn

from fastapi_app.app import app
from helpers.constants import APP_LOGGER, CONFIG_FILE, LISTEN_HOST, LISTEN_PORT


def main() -> None:
    APP_LOGGER.info(
        msg=f"Starting CloudWatch exporter on {LISTEN_HOST}:{LISTEN_PORT}",
        config_file=CONFIG_FILE,
    )
    uvicorn.run(app, host=LISTEN_HOST, port=LISTEN_PORT, log_level="warning")


if __name__ == "__main__":
    main()
