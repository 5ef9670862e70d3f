"""
BaseService -- abstract base for session-bound services.

Responsibility:
    Common constructor for services that write through a SQLAlchemy
    ``Session`` handed in by the caller.  Services flush, they never
    commit or roll back.

Architecture position:
    Services -- imperative shell.  Extended by SequenceService and
    VoucherWriter; the reference stores own the transaction around them.

Failure modes:
    - A subclass that commits breaks the all-or-nothing write of a voucher
      header, its items and its ledger rows.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from voucher_staging.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Contract:
        Accepts a ``Session`` from the caller and persists changes with
        ``session.flush()`` inside the caller's transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session):
        self.session = session
