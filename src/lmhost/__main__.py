"""Main entry point for lmhost - runs the API server or a one-shot provider command."""

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict

from .util.capabilities import introspect
from .util.config_manager import ConfigManager
from .util.errors import UnknownProvider
from .util.installer import ProviderInstaller
from .util.providers import ProviderSettings, detect, list_providers


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def find_free_port() -> int:
    """Find an available port for the server."""
    import socket

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        return s.getsockname()[1]


def run_server(host: str = "127.0.0.1", port: int = 0, log_level: str = "info") -> None:
    """Run the lmhost API server.

    Args:
        host: Host to bind to
        port: Port to run on (0 for ephemeral)
        log_level: uvicorn log level
    """
    import uvicorn
    from lmhost.server.main import create_app

    if port == 0:
        port = find_free_port()

    app = create_app()
    print(f"Starting lmhost API server on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level=log_level.lower())


def _print_json(data) -> None:
    print(json.dumps(data, indent=2))


def _settings(provider_id: str, elevate: bool = False) -> ProviderSettings:
    stored = ConfigManager().get_provider_settings(provider_id)
    return ProviderSettings(
        manual_path=stored.manual_path,
        elevate=elevate or stored.elevate,
        endpoint=stored.endpoint,
    )


def main() -> int:
    """Main entry point for lmhost."""
    parser = argparse.ArgumentParser(description="lmhost: local model provider host")
    parser.add_argument(
        "--log-level",
        type=str,
        default=os.environ.get("LMHOST_LOG_LEVEL", "info"),
        help="Logging level (default: info, or LMHOST_LOG_LEVEL)",
    )
    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the API server (default)")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Port to bind (0 = ephemeral)")

    subparsers.add_parser("providers", help="List known providers")

    for name, help_text in (
        ("detect", "Detect whether a provider is installed"),
        ("capabilities", "Show a provider's capabilities"),
        ("update", "Update an installed provider"),
    ):
        cmd = subparsers.add_parser(name, help=help_text)
        cmd.add_argument("provider_id")

    install = subparsers.add_parser("install", help="Install a provider")
    install.add_argument("provider_id")
    install.add_argument("--elevate", action="store_true", help="Run the installer with sudo")

    args = parser.parse_args()
    configure_logging(args.log_level)

    try:
        if args.command in (None, "serve"):
            run_server(
                host=getattr(args, "host", "127.0.0.1"),
                port=getattr(args, "port", 8000),
                log_level=args.log_level,
            )
            return 0

        if args.command == "providers":
            _print_json([
                {"id": d.id, "name": d.display_name, "endpoint": d.default_endpoint}
                for d in list_providers()
            ])
            return 0

        if args.command == "detect":
            _print_json(asdict(detect(args.provider_id, _settings(args.provider_id))))
            return 0

        if args.command == "capabilities":
            summary = introspect(args.provider_id, _settings(args.provider_id))
            _print_json(summary.to_dict() if summary else None)
            return 0

        installer = ProviderInstaller()
        if args.command == "install":
            result = installer.install(args.provider_id, _settings(args.provider_id, args.elevate))
        else:
            result = installer.update(args.provider_id, _settings(args.provider_id))
        _print_json(result.to_dict())
        return 0 if result.success else 1

    except UnknownProvider as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
