#!/usr/bin/env python
"""
Serve the Sales Engine HTTP API with uvicorn.

Usage:
    python scripts/run_api.py --port 8000 --reload
"""
import argparse
import sys
from pathlib import Path

import uvicorn

# Add src to path
SRC = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(SRC))


def main():
    parser = argparse.ArgumentParser(description="Run the Sales Engine API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="restart on source changes")
    args = parser.parse_args()

    print(f"Starting Sales Engine API on http://{args.host}:{args.port}")
    uvicorn.run(
        "sales_engine.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        reload_dirs=[str(SRC)] if args.reload else None,
    )


if __name__ == "__main__":
    main()
