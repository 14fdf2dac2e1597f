"""Chorus dev launcher. Serves the voice API with uvicorn."""

import argparse
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="Chorus dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", type=int, default=int(PORT))
    parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    args = parser.parse_args()

    # chorus.app reads DATA_DIR when it builds the default app
    if args.data_dir:
        args.data_dir.mkdir(parents=True, exist_ok=True)
        os.environ["DATA_DIR"] = str(args.data_dir.resolve())

    print(f"Starting chorus on http://{args.host}:{args.port} ...")
    uvicorn.run("chorus.app:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
