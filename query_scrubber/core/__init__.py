"""
Core modules for Query Scrubber.

This package contains token estimation, batch selection, the
anonymization round trip and the job that iterates over projects.
"""
