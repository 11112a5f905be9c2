"""
RestMock CLI

Command-line entry point for the config-driven mock server.

Usage:
    # Serve a config file
    restmock mock.yml --port 8080

    # Validate a config file and exit
    restmock mock.yml --check
"""

import argparse
import logging
import sys

from . import __version__
from .config import ConfigError, apply_overrides, load_config, validate_config
from .mock import MockServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='restmock',
        description="RestMock - configurable mock HTTP server with chaos, templating and record/replay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve resources and static endpoints from a config file
  %(prog)s mock.yml --port 8080

  # Require a bearer token on mutating routes
  %(prog)s mock.yml --auth-token secret

  # Record all traffic, then replay it
  %(prog)s mock.yml --record-replay record --record-file traffic.ndjson
  %(prog)s mock.yml --record-replay replay --record-file traffic.ndjson

  # Check a config file without starting the server
  %(prog)s mock.yml --check
        """
    )

    parser.add_argument('config', help='YAML or JSON config file')
    parser.add_argument('--host', default='127.0.0.1', help='Host to bind (default: 127.0.0.1)')
    parser.add_argument('-p', '--port', type=int, help='Port to bind (default: config port or 8080)')
    parser.add_argument('--auth-token', help='Bearer token required on mutating routes (overrides config)')
    parser.add_argument('--record-replay', choices=['off', 'record', 'replay'],
                        help='Record/replay mode (overrides config)')
    parser.add_argument('--record-file', help='Record/replay file (overrides config)')
    parser.add_argument('--no-hot-reload', action='store_true', help='Do not watch the config file for changes')
    parser.add_argument('--log-level', default='info', choices=['debug', 'info', 'warning', 'error'],
                        help='Log level (default: info)')
    parser.add_argument('--check', action='store_true', help='Validate the config file and exit')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    return parser


def cmd_check(config_path: str) -> int:
    """Print every problem in a config file; exit status 1 when there are any."""
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ConfigError) as e:
        print(f"❌ {e}")
        return 1

    errors = validate_config(config)
    if errors:
        print(f"❌ {config_path}: {len(errors)} problem(s)")
        for error in errors:
            print(f"   - {error}")
        return 1

    print(f"✅ {config_path} is valid "
          f"({len(config.resources)} resources, {len(config.static_endpoints)} static endpoints)")
    return 0


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )

    if args.check:
        return cmd_check(args.config)

    overrides = {
        key: value for key, value in {
            'port': args.port,
            'auth_token': args.auth_token,
            'record_replay_mode': args.record_replay,
            'record_replay_file': args.record_file
        }.items() if value is not None
    }

    try:
        config = apply_overrides(load_config(args.config), **overrides)
        server = MockServer(
            config_path=args.config,
            config=config,
            hot_reload=False if args.no_hot_reload else None,
            overrides=overrides
        )
    except (FileNotFoundError, ConfigError) as e:
        print(f"❌ Failed to start mock server: {e}")
        return 1

    try:
        server.start(host=args.host, log_level=args.log_level)
    except KeyboardInterrupt:
        print("\n👋 Mock server stopped")
    return 0


if __name__ == '__main__':
    sys.exit(main())
