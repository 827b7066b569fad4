"""envault: encrypted, layered environment files for version control."""

__version__ = "0.1.0"
