"""Allow running as `python -m parley`."""

from .cli import main

main()
