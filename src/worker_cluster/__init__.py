"""Bounded worker-process cluster with queue-driven respawn."""

__version__ = "0.3.0"
