"""Workspace gateway entry point.

Commands:
  serve          Run the HTTP gateway (default).
  generate-key   Print a fresh 256-bit token encryption key (hex).
"""

import argparse
import logging

from workspace_gateway import __version__
from workspace_gateway.config import get_settings
from workspace_gateway.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="workspace-gateway",
        description="Google Workspace MCP gateway with OAuth 2.1 + PKCE",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  workspace-gateway                          Start the gateway with settings from the environment
  workspace-gateway serve --port 9000        Start on another port
  workspace-gateway serve --dev              Start with auto-reload
  workspace-gateway generate-key             Print a new ENCRYPTION_KEY value
""",
    )
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {__version__}")

    sub = parser.add_subparsers(dest="command")
    serve = sub.add_parser("serve", help="Run the HTTP gateway")
    serve.add_argument("--host", type=str, default=None, help="Bind address (default: settings)")
    serve.add_argument("--port", "-p", type=int, default=None, help="Port (default: settings)")
    serve.add_argument("--dev", action="store_true", help="Auto-reload on source changes")
    sub.add_parser("generate-key", help="Print a new token encryption key")

    args = parser.parse_args()

    if args.command == "generate-key":
        from workspace_gateway.secret_store import generate_encryption_key

        print(generate_encryption_key())
        return

    settings = get_settings()
    setup_logging(level="DEBUG" if getattr(args, "dev", False) else settings.log_level)

    from workspace_gateway.api.serve import run_server

    run_server(
        host=getattr(args, "host", None),
        port=getattr(args, "port", None),
        dev=getattr(args, "dev", False),
    )


if __name__ == "__main__":
    main()
