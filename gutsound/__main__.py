"""Allow running as `python -m gutsound`."""

from gutsound.cli import main

main()
