"""
app/validators package marker.
"""

from app.validators.trip_row_validator import TripRowValidator

__all__ = [
    "TripRowValidator",
]
