"""ModHost: mod discovery, content-addressed extraction and load ordering."""

__version__ = "0.1.0"
