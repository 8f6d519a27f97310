#!/usr/bin/env python3
"""
EMI Engine Entry Point

Starts the FastAPI server with settings from the environment (EMI_* variables).
"""

import sys

from emi_engine.api import run_server
from emi_engine.config import get_config
from emi_engine.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    logger.info(f"Starting EMI engine at http://{config.api_host}:{config.api_port} "
                f"(storage: {config.database_url})")

    try:
        run_server(host=config.api_host, port=config.api_port, debug=False)
    except KeyboardInterrupt:
        logger.info("Shutting down EMI engine")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
