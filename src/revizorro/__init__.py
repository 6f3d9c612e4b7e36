"""Agent-driven test marking and review dispatcher."""

__version__ = "0.1.0"
