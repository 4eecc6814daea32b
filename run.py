#!/usr/bin/env python3
"""
Crowdfund Ledger Entry Point

Starts the FastAPI server with the campaign ledger.
"""

import sys

from crowdfund.api import run_server
from crowdfund.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting Crowdfund Ledger...")
    print(f"Storage: {config.database_url}")
    print(f"Token service: {config.token_service_url or 'in-memory'}")
    print(f"API available at: http://localhost:{config.api_port}")
    print()

    try:
        run_server(debug="--debug" in sys.argv)
    except KeyboardInterrupt:
        print("\nShutting down Crowdfund Ledger...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
