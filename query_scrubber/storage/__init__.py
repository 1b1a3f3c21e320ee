"""
Storage layer for the query stats store and the usage ledger.
"""
