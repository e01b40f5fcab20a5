#!/usr/bin/env python3
"""
Gallery Live API Setup and Run Script

This script prepares the environment and starts the Gallery Live API server.
"""

import os
import sys
from pathlib import Path


def setup_environment():
    """Set up environment variables and configuration"""
    print("Setting up Gallery Live API environment...")

    os.environ.setdefault("ENVIRONMENT", "development")

    # SQLite by default; point DATABASE_URL at postgresql+asyncpg:// to share data
    db_url = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./gallery_live.db")
    os.environ["DATABASE_URL"] = db_url
    print(f"Database URL: {db_url}")

    if not os.getenv("UNSPLASH_ACCESS_KEY"):
        print("Warning: UNSPLASH_ACCESS_KEY is not set, image requests will fail")

    os.environ.setdefault("PYTHONPATH", str(Path.cwd()))
    return True


def start_server():
    """Start the Gallery Live API server"""
    port = int(os.getenv("PORT", "8000"))
    print("Starting Gallery Live API server...")
    print(f"Server will be available at: http://localhost:{port}")
    print(f"Health check endpoint: http://localhost:{port}/healthcheck")
    print("Press Ctrl+C to stop the server")
    print("-" * 50)

    try:
        import uvicorn

        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=port,
            reload=True,
            log_level="info",
            access_log=True,
        )
    except KeyboardInterrupt:
        print("\nServer stopped by user")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)


def main():
    """Main setup and run function"""
    print("Gallery Live API - Setup and Run")
    print("=" * 40)

    script_dir = Path(__file__).parent
    os.chdir(script_dir)
    print(f"Working directory: {script_dir}")

    if not setup_environment():
        print("Failed to setup environment")
        sys.exit(1)

    start_server()


if __name__ == "__main__":
    main()
