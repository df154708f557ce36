"""
ExchangeMock CLI

Command-line interface for the ExchangeMock server.

Commands:
    serve       - Start the mock server from a configuration file
    validate    - Validate a configuration file and list its routes

Examples:
    # Start mock server
    exchangemock serve mocks.yaml --port 8080

    # Check a configuration file
    exchangemock validate mocks.yaml
"""

import argparse
import logging
import sys

from .config import LOG_LEVELS, ServerConfiguration
from .errors import MockServerError
from .server import MockServer


def load_configuration(args) -> ServerConfiguration:
    """Load the configuration file and apply command-line overrides."""
    config = ServerConfiguration.from_file(args.config)

    if getattr(args, 'host', None):
        config.host = args.host
    if getattr(args, 'port', None) is not None:
        config.port = args.port
    if getattr(args, 'delay', None) is not None:
        config.delay = args.delay
    if getattr(args, 'log_level', None):
        config.log_level = args.log_level
    if getattr(args, 'no_admin', False):
        config.admin_enabled = False

    config.validate()
    return config


def describe_exchanges(config: ServerConfiguration):
    """Print one line per declared exchange with its status sequence."""
    for exchange in config.exchanges:
        statuses = ' → '.join(str(response.status) for response in exchange.responses)
        print(f"   {exchange.request.method:<7} {exchange.request.path}  [{statuses}]")


def cmd_serve(args):
    """
    Start the mock server and block until interrupted.

    Args:
        args: Parsed command-line arguments
    """
    print("🎭 ExchangeMock Server")

    try:
        config = load_configuration(args)
    except (MockServerError, OSError) as e:
        print(f"❌ Failed to load configuration: {e}")
        sys.exit(1)

    logging.basicConfig(
        level=config.python_log_level,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    server = MockServer()
    try:
        server.configure(config)
    except MockServerError as e:
        print(f"❌ Failed to configure mock server: {e}")
        sys.exit(1)

    print(f"   Address: {server.address_description}")
    print(f"   Exchanges: {len(config.exchanges)}")
    print(f"   Default delay: {config.delay}s")
    if config.admin_enabled:
        print(f"   Admin API: {server.address_description}{config.admin_prefix}/metrics")
    describe_exchanges(config)
    print()

    try:
        server.serve_forever()
    except MockServerError as e:
        print(f"❌ Failed to start mock server: {e}")
        sys.exit(1)

    print("👋 Mock server stopped")


def cmd_validate(args):
    """
    Validate a configuration file.

    Args:
        args: Parsed command-line arguments
    """
    try:
        config = load_configuration(args)
    except (MockServerError, OSError) as e:
        print(f"❌ Invalid configuration: {e}")
        sys.exit(1)

    print(f"✅ {args.config}: {len(config.exchanges)} exchanges")
    describe_exchanges(config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="ExchangeMock - configurable mock HTTP server for client testing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start mock server on port 9090
  %(prog)s serve mocks.yaml --port 9090

  # Override the default delay (seconds)
  %(prog)s serve mocks.yaml --delay 0.5

  # Validate a configuration file
  %(prog)s validate mocks.yaml
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # --- SERVE command ---
    serve_parser = subparsers.add_parser('serve', help='Start mock HTTP server')
    serve_parser.add_argument('config', help='YAML or JSON configuration file')
    serve_parser.add_argument('--host', help='Host to bind (overrides config)')
    serve_parser.add_argument('-p', '--port', type=int, help='Port to bind (overrides config)')
    serve_parser.add_argument('--delay', type=float, help='Default response delay in seconds (overrides config)')
    serve_parser.add_argument('--log-level', choices=LOG_LEVELS, help='Log level (overrides config)')
    serve_parser.add_argument('--no-admin', action='store_true', help='Disable admin API')

    # --- VALIDATE command ---
    validate_parser = subparsers.add_parser('validate', help='Validate a configuration file')
    validate_parser.add_argument('config', help='YAML or JSON configuration file')

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == 'serve':
        cmd_serve(args)
    elif args.command == 'validate':
        cmd_validate(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == '__main__':
    main()
