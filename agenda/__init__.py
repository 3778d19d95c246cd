"""Multi-tenant appointment agenda with subscription licensing."""

__version__ = "1.0.0"
