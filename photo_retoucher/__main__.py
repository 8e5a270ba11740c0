"""Allow ``python -m photo_retoucher``."""

import sys

from .cli import main

sys.exit(main())
