"""
CLI Commands for the points ledger.

Provides Flask CLI commands for setup and ledger maintenance.

Usage:
    flask loyalty seed-settings                        # Store default settings
    flask loyalty verify                               # Compare caches with the ledger
    flask loyalty verify --role customer               # ... for one role
    flask loyalty rebuild --account-id C1 --role customer
    flask loyalty leaderboard --role representative --limit 5
"""
from .loyalty import init_app as init_loyalty_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_loyalty_commands(app)
