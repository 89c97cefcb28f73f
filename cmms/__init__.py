"""
CMMS Core

The time-driven derived-state engine of a maintenance-management backend:
preventive maintenance scheduling, contract lifecycle evaluation and
maintenance reporting over a PostgreSQL store.
"""

__version__ = "0.1.0"
