"""Allow `python -m ffrenc`."""

from .cli import main

main()
