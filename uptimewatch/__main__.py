"""Allow running as ``python -m uptimewatch``."""

from . import main

main()
