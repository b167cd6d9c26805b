"""
Route blueprints for the ledger auth API.
"""

from .health import health_bp
from .auth_routes import auth_bp
from .twofa_routes import twofa_bp
from .admin import admin_bp

__all__ = ['health_bp', 'auth_bp', 'twofa_bp', 'admin_bp']
