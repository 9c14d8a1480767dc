"""Flask routes."""
from app.routes.auth import auth_bp
from app.routes.tickets import tickets_bp
from app.routes.profiles import profiles_bp
from app.routes.settings import settings_bp
from app.routes.admin import admin_bp
from app.routes.functions import functions_bp

__all__ = [
    'auth_bp',
    'tickets_bp',
    'profiles_bp',
    'settings_bp',
    'admin_bp',
    'functions_bp',
]
