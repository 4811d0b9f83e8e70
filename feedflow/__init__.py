"""
feedflow - feed ingestion and automated article generation.
"""

__version__ = "1.0.0"
