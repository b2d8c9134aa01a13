import sys

from export_consistency.cli import main

sys.exit(main())
