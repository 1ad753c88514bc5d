"""Schema migrations: discovery, grouping, applying and rolling back."""

__all__ = ["migration", "migrations", "migrator"]