"""Secrets file parsers."""

from envault.parsers.dotenv import DotenvParser

__all__ = ["DotenvParser"]
