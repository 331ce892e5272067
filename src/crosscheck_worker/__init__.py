"""Worker node for distributed source-code cross-checking."""

__version__ = "0.3.0"
