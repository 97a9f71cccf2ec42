"""
API Routes
==========

Route modules for the data cleaner service.
"""

from datacleaner.api.routes.cleaning import router as cleaning_router
from datacleaner.api.routes.prices import router as prices_router
from datacleaner.api.routes.settings import router as settings_router
from datacleaner.api.routes.table import router as table_router

__all__ = ["cleaning_router", "prices_router", "settings_router", "table_router"]
