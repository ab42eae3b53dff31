"""AllTown Dispatch: multi-tenant local delivery coordination service."""

__version__ = "1.0.0"
