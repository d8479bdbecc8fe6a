"""Allow ``python -m qtrack``."""

import sys

from qtrack.cli import main

sys.exit(main())
