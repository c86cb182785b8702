"""Start the resume synthesis HTTP service.

Usage:
    python run.py

Server runs at http://localhost:8000 (or next free port 8001, 8002, ... if 8000 is in use).
"""

import logging
import os
import socket
import sys
from pathlib import Path

# Ensure project root is on path
PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


def _free_port(start: int = 8000, end: int = 8010) -> int:
    """Return the first port in [start, end] that is free to bind."""
    for port in range(start, end + 1):
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.bind(("127.0.0.1", port))
                return port
        except OSError:
            continue
    return start  # fallback, uvicorn will raise if still in use


def serve(host: str = None, port: int = None, reload: bool = False):
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    host = host or os.getenv("HOST", "127.0.0.1")
    port = port or int(os.getenv("PORT", "0")) or _free_port()
    print(f"Starting server at http://{host}:{port}")
    print("Press Ctrl+C to stop")
    uvicorn.run(
        "web.app:app",
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    serve(reload=True)
