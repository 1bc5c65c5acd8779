"""Infinite Chronicles dev launcher. Starts the API server in watch mode."""

import argparse
import os
import signal
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="Infinite Chronicles dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Save/config storage directory (default: ./data)")
    parser.add_argument("--port", default=PORT, help=f"API port (default: {PORT})")
    parser.add_argument("--log-level", default=None,
                        help="Logging level for the engine (default: INFO)")
    args = parser.parse_args()

    # Build env for the subprocess so the app picks up the same data dir
    env = os.environ.copy()
    if args.data_dir:
        env["DATA_DIR"] = str(args.data_dir.resolve())
    if args.log_level:
        env["LOG_LEVEL"] = args.log_level

    if not (env.get("API_KEY") or env.get("GEMINI_API_KEY")):
        print("Note: no API_KEY set; players must supply their own key.")

    proc = subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "infinite_chronicles.app:app",
         "--reload", "--host", HOST, "--port", str(args.port)],
        cwd=ROOT, env=env,
    )

    def shutdown(*_):
        print("\nShutting down...")
        proc.terminate()
        proc.wait()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    print(f"Starting API on http://localhost:{args.port} ...")
    proc.wait()


if __name__ == "__main__":
    main()
