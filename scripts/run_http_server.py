#!/usr/bin/env python3
"""
Startup script for the ST-Schema mock partner server

Runs the mock OAuth server and partner interaction endpoint with
configuration taken from the environment.
"""

import os
import sys
import logging

from stschema_mock.http_server import SchemaMockHTTPServer
from stschema_mock.http_config import Config

def setup_logging():
    """Setup logging configuration"""
    log_level = os.getenv("LOG_LEVEL", "INFO")

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )

def main():
    """Main entry point"""
    setup_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting ST-Schema mock partner server...")

    environment = os.getenv("ENVIRONMENT", "development")

    if environment == "production":
        config = Config.for_production()
        logger.info("Running in PRODUCTION mode")
    else:
        config = Config.for_development()
        config.validate()
        logger.info("Running in DEVELOPMENT mode")

    logger.info(f"Configuration: command_mode={config.interaction.command_mode}, "
                f"state_source={config.state_source.url or config.state_source.file_path or 'static'}")

    try:
        server = SchemaMockHTTPServer(config)

        logger.info(f"Server starting on {config.server.host}:{config.server.port}")
        logger.info("Available endpoints:")
        logger.info("  GET  /authorize - Login form")
        logger.info("  POST /authorize - Submit credentials, redirect with code")
        logger.info("  POST /token - Exchange authorization code")
        logger.info("  GET  /userinfo - Bearer token identity")
        logger.info("  POST /interaction - Partner schema interactions")
        logger.info("  GET  /health - Health check")

        server.run(host=config.server.host, port=config.server.port)

    except Exception as e:
        logger.error(f"Failed to start server: {e}")
        raise

if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nShutting down server...")
    except Exception as e:
        print(f"Server startup failed: {e}")
        sys.exit(1)
