#!/usr/bin/env python3
"""
ExchangeMock - configurable mock HTTP server

This is a convenience wrapper that calls the packaged CLI.
The actual implementation is in src/exchangemock/cli.py

Usage:
    python exchangemock-server.py serve sample-mocks.yaml --port 8080

For more information, see src/exchangemock/cli.py
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent / "src"))

from exchangemock.cli import main

if __name__ == '__main__':
    main()
