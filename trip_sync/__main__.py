import sys

from trip_sync.ingestion.worker import main

sys.exit(main())
