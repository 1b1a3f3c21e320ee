"""
HTTP surface of Query Scrubber.
"""
