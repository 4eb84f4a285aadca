#!/usr/bin/env python3

"""
Continuous sync worker that pulls the Uber daily trip export on schedule.
"""

import sys

from trip_sync.ingestion.worker import main

if __name__ == "__main__":
    sys.exit(main())
