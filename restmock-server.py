#!/usr/bin/env python3
"""
RestMock Server

Start the config-driven mock HTTP server.

Usage:
    python3 restmock-server.py mock.yml --port 8080
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent / 'src'))

from restmock.cli import main


if __name__ == '__main__':
    sys.exit(main())
