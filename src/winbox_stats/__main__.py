import sys

from winbox_stats.cli import main

sys.exit(main())
