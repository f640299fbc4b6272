"""
Utils Package
"""

from .time import to_utc_timestamp, utc_now

__all__ = ["to_utc_timestamp", "utc_now"]
