"""Building blocks for SQL tooling: tag parsing, naming, time parsing and migrations."""

__version__ = "0.1.0"