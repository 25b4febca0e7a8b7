"""
Development server for the Spotter Lead Platform API.

Usage:
    python scripts/run_api.py
    LEAD_STORE_BACKEND=memory python scripts/run_api.py --port 8080
"""

import argparse
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


if __name__ == "__main__":
    import uvicorn

    parser = argparse.ArgumentParser(description="Run the API with auto-reload")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    print(f"Starting server on http://{args.host}:{args.port} (docs at /docs)")
    uvicorn.run(
        "api.main:app",
        host=args.host,
        port=args.port,
        app_dir=str(project_root),
        reload=True,
        reload_dirs=[str(project_root)],
        log_level="info",
    )
