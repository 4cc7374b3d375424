"""Synthetic insert/update/delete churn for sharded MongoDB clusters."""

__version__ = "0.1.0"
