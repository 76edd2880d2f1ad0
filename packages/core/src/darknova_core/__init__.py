"""Core domain & services for Darknova farm order management.

Contains the domain model, block catalog, storage ports with their relational
and local-file adapters, the application service and configuration.
"""

from .config import Settings  # noqa: F401

__version__ = "0.1.0"
