"""Allow ``python -m arlon_ctl``."""

import sys

from arlon_ctl.cli import main

sys.exit(main())
