"""Allow ``python -m worldvar``."""

from worldvar.cli import cli

cli()
