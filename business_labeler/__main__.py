"""Allow running the reconciler with ``python -m business_labeler``."""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
