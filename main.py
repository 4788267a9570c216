"""StoryWeaver — dev launcher. Starts the story API under uvicorn."""

import argparse
import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13013")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def main():
    parser = argparse.ArgumentParser(description="StoryWeaver dev launcher")
    parser.add_argument("--host", default=HOST, help=f"Bind address (default: {HOST})")
    parser.add_argument("--port", type=int, default=int(PORT),
                        help=f"Port (default: {PORT})")
    parser.add_argument("--reload", action="store_true",
                        help="Restart on code changes")
    parser.add_argument("--log-level", default=LOG_LEVEL,
                        help=f"Logging level (default: {LOG_LEVEL})")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print(f"Starting story API on http://localhost:{args.port} ...")
    uvicorn.run(
        "storyweaver.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level.lower(),
    )


if __name__ == "__main__":
    main()
