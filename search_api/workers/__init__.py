"""
Background jobs. See `scheduler` for the periodic reconciliation of pending
backend tasks.
"""
