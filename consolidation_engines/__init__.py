"""
Pure calculation engines for group consolidation.

Zero I/O: engines receive fully materialized inputs (member trial
balances, pinned intercompany transactions, rate lookups injected as
callables) and return frozen results.
"""
