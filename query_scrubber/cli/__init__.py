"""
Command-line interface for Query Scrubber.
"""
