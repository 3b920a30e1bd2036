"""Parse, validate and inspect signature bundles and signing certificates."""

__version__ = "0.1.0"