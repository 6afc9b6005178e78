"""sqlshape CLI package."""

from sqlshape.cli.main import cli

__all__ = ["cli"]
