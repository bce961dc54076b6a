"""Run the GateSync service."""

import logging
import uvicorn

from gatesync.config import settings


def main():
    """Configure logging and start the API server."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    uvicorn.run("gatesync.main:app", host=settings.app_host, port=settings.app_port)


if __name__ == "__main__":
    main()
