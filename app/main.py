"""
REST Backend Entry Point

Serves the JSON document API:

    python -m app.main

Host, port, data file and CORS origins come from FINBOT_SERVER_* variables.
"""

import structlog
import uvicorn

from finbot.api import ServerDocumentStore, create_app
from finbot.config import get_settings


logger = structlog.get_logger()


def main() -> None:
    settings = get_settings()
    server = settings.server
    app_settings = settings.app
    app = create_app(ServerDocumentStore(server.data_file))

    logger.info(
        "server_starting",
        host=server.host,
        port=server.port,
        data_file=server.data_file,
        environment=app_settings.app_environment,
    )
    uvicorn.run(
        app,
        host=server.host,
        port=server.port,
        log_level="debug" if app_settings.debug_mode else "info",
    )


if __name__ == "__main__":
    main()
