"""Ledger and pricing services.

Service functions take an open ``Session`` and never commit; callers wrap
them in :func:`session_engine.services.transactions.run_in_transaction` so a
multi-step operation (reserve + allocate, approve + allocate, complete
purchase + grow pool) commits as a unit.
"""
