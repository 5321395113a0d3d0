import sys

from dashboard_guard.cli import main

sys.exit(main())
