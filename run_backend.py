#!/usr/bin/env python3
"""
Launcher script for the payroll backend.

Run the API server without remembering the module path:

    python run_backend.py

Environment variables can be configured in .env
"""

import os
import sys


def main():
    """Start the payroll backend server"""
    try:
        import uvicorn
        from payroll_backend.config import get_app_config
        from payroll_backend.main import app

        config = get_app_config()
        host = os.getenv("BACKEND_HOST", config.host)
        port = int(os.getenv("BACKEND_PORT", str(config.port)))

        print("=" * 60)
        print("Starting Payroll Backend Server")
        print("=" * 60)
        print(f"Host: {host}")
        print(f"Port: {port}")
        print("=" * 60)
        print()

        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level=config.log_level.lower()
        )
    except ImportError as e:
        print(f"Error: Failed to import required modules: {e}")
        print("\nMake sure you have installed the package:")
        print("  pip install -e .")
        sys.exit(1)


if __name__ == "__main__":
    main()
