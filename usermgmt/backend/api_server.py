#!/usr/bin/env python3
"""
tinyauth User Management API Server

Main entry point for the account sidecar.
"""

import logging
import os
import sys

from ..auth import MetadataStoreError
from ..config import load_settings
from .api_modular import create_app, run_server


def main():
    """Main entry point for the API server."""
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    settings = load_settings()

    try:
        app = create_app(settings)
    except MetadataStoreError as e:
        print(f"Error: failed to init store: {e}", file=sys.stderr)
        sys.exit(1)

    # Check if running with waitress (production mode)
    use_waitress = os.environ.get("USE_WAITRESS", "true").lower() in ("true", "1", "yes")
    debug = os.environ.get("FLASK_DEBUG", "false").lower() in ("true", "1", "yes")

    app.logger.info(f"tinyauth-usermanagement listening on :{settings.port}")
    run_server(app, port=settings.port, debug=debug, use_waitress=use_waitress)


if __name__ == "__main__":
    main()
