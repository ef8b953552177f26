"""
HTTP API blueprints for the loyalty points ledger.
"""
from .loyalty import loyalty_bp
from .settings import settings_bp
from .evaluations import evaluations_bp

__all__ = ['loyalty_bp', 'settings_bp', 'evaluations_bp']
