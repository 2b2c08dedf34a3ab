#!/usr/bin/env python3
"""
Run the on-call HTTP API locally

Usage:
  python scripts/run_server.py --port 8080
  ONCALL_STATIC_TOKENS="dev-token=admin-uid" python scripts/run_server.py

Store defaults to data/oncall_store.json.
"""

import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from oncall.cli import main

if __name__ == "__main__":
    sys.exit(main(["serve"] + sys.argv[1:]))
