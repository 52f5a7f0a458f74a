"""
MarginDesk — Entry Point
==========================

Run:
    python main.py                       # API server
    python main.py --port 9000 --reload
    python main.py sync --type employees # one sync, then exit
"""

import argparse
import os
import sys

from dotenv import load_dotenv

load_dotenv()

from scripts.lib.logger import setup_logger

logger = setup_logger("margindesk")


def serve(host: str, port: int, reload: bool) -> None:
    import uvicorn

    logger.info("=" * 60)
    logger.info("  MARGINDESK — Finance & Operations Back Office")
    logger.info("=" * 60)
    logger.info(f"  Environment : {os.getenv('ENVIRONMENT', 'development')}")
    logger.info(f"  Server      : http://{host}:{port}")
    logger.info(f"  API Docs    : http://localhost:{port}/docs")
    logger.info(f"  Zoho region : {os.getenv('ZOHO_REGION', 'IN')}")
    logger.info(f"  Supabase    : {'configured' if os.getenv('SUPABASE_URL') else 'not configured (in-memory store)'}")
    logger.info("=" * 60)

    uvicorn.run("dashboard.api.main:app", host=host, port=port, reload=reload)


def main():
    if len(sys.argv) > 1 and sys.argv[1] == "sync":
        from scripts.sync_runner import main as sync_main

        sys.argv = [sys.argv[0]] + sys.argv[2:]
        sync_main()
        return

    parser = argparse.ArgumentParser(description="MarginDesk API server")
    parser.add_argument("--host", default=os.getenv("API_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("API_PORT", "8001")))
    parser.add_argument(
        "--reload", action="store_true",
        default=os.getenv("DEBUG", "false").lower() == "true",
        help="Auto-reload on code changes",
    )
    args = parser.parse_args()
    serve(args.host, args.port, args.reload)


if __name__ == "__main__":
    main()
