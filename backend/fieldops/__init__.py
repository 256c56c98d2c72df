"""Field-service job lifecycle backend."""

__version__ = "0.1.0"
