#!/usr/bin/env python3
"""
Arrears Ageing Service Entry Point

Starts the FastAPI server using the ARREARS_* environment settings.
"""

import sys

from arrears_ageing.api import run_server
from arrears_ageing.config import get_config


if __name__ == "__main__":
    settings = get_config()
    print("Starting Loan Arrears Ageing service...")
    print(f"Storage: {settings.database_url}")
    print(f"API available at: http://localhost:{settings.api_port}")
    print(f"Documentation at: http://localhost:{settings.api_port}/docs")
    print()

    try:
        run_server()
    except KeyboardInterrupt:
        print("\nShutting down arrears ageing service...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
