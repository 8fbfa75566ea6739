"""
geonames-refresh: keeps the geonames reference tables fresh without downtime.
"""

__version__ = "0.1.0"
