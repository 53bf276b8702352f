from .page_routes import pages_bp
from .embed_routes import embed_bp
from .builder_routes import builder_bp
from .admin_routes import admin_bp

__all__ = ["pages_bp", "embed_bp", "builder_bp", "admin_bp"]
