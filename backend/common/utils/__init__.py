"""Common utility functions."""

from .geo import distance_miles, is_valid_coordinate

__all__ = [
    "distance_miles",
    "is_valid_coordinate",
]
