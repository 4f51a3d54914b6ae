#!/usr/bin/env python3
"""
Launch script for the Drone Flight Logbook Backend.

Usage:
    python run_server.py [--data-dir DIR] [--db PATH] [--port PORT] [--host HOST]

Examples:
    python run_server.py                        # Use ./data/flights.db
    python run_server.py --data-dir ~/drone     # Keep the database elsewhere
    python run_server.py --port 5000            # Run on port 5000
"""

import argparse
import os
import sys
from pathlib import Path

# Add dronelog to path
sys.path.insert(0, str(Path(__file__).parent))


def main():
    parser = argparse.ArgumentParser(description="Drone Flight Logbook Backend Server")
    parser.add_argument(
        "--data-dir",
        default=os.getenv("DRONELOG_DATA_DIR", "./data"),
        help="Directory holding the flight database (default: ./data)"
    )
    parser.add_argument(
        "--db",
        default=None,
        help="Explicit database file (default: <data-dir>/flights.db)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=8000,
        help="Port to run server on (default: 8000)"
    )
    parser.add_argument(
        "--host", "-H",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for all interfaces)"
    )
    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Run in debug mode with auto-reload and debug logging"
    )

    args = parser.parse_args()

    data_dir = Path(args.data_dir).expanduser()
    db_path = Path(args.db).expanduser() if args.db else data_dir / "flights.db"

    # Read by dronelog.config when the app is imported
    os.environ["DRONELOG_DATA_DIR"] = str(data_dir)
    os.environ["DRONELOG_DB_PATH"] = str(db_path)
    if args.debug:
        os.environ["DRONELOG_LOG_LEVEL"] = "DEBUG"

    print(f"Drone Flight Logbook Backend")
    print(f"=" * 40)
    print(f"Database: {db_path.absolute()}")
    print(f"Server: http://{args.host}:{args.port}")
    print(f"=" * 40)

    print("\nAPI Endpoints:")
    print("  GET    /                       - Health check")
    print("  GET    /health                 - Detailed health")
    print("  POST   /flights/import         - Upload a log file")
    print("  POST   /flights/import-path    - Import a server-side file")
    print("  POST   /flights/import-folder  - Import a server-side folder")
    print("  GET    /flights                - List all flights")
    print("  GET    /flights/{id}/data      - Get downsampled track")
    print("  PATCH  /flights/{id}           - Rename a flight")
    print("  DELETE /flights/{id}           - Delete a flight")
    print("  GET    /overview               - Aggregate statistics")
    print("\nStarting server...")

    import uvicorn

    uvicorn.run(
        "dronelog.main:app",
        host=args.host,
        port=args.port,
        reload=args.debug,
        log_level="debug" if args.debug else "info",
    )


if __name__ == "__main__":
    main()
