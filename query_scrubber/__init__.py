"""
Query Scrubber: scheduled anonymization of stored query logs.
"""

__version__ = "0.1.0"
