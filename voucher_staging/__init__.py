"""
voucher_staging -- staging area for raw transaction rows and their posting
to a double-entry ledger as vouchers.

Layers (imports only point downward):
    domain/    pure logic: rows, grouping, balance check, command bus, clock
    db/        SQLAlchemy engine, declarative base, column types
    models/    ORM tables for the reference staging and ledger stores
    services/  row store, debounced writes, posting pipeline, SQL stores
    cli        ``python -m voucher_staging``
"""

__version__ = "0.1.0"
