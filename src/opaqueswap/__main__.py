"""Allow ``python -m opaqueswap``."""

import sys

from opaqueswap.main import main

sys.exit(main())
