"""Allow ``python -m typed_rows``."""

import sys

from typed_rows.cli import main

sys.exit(main())
