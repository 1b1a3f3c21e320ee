"""
Demo data for trying the job locally.
"""
