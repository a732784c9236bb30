"""
app/api/routers package marker.
"""

from app.api.routers.trip_import import router as trip_import_router
from app.api.routers.trip_queries import router as trip_queries_router

__all__ = [
    "trip_import_router",
    "trip_queries_router",
]
