"""Order lifecycle service: domain model, storage and HTTP API."""

__version__ = "0.1.0"
