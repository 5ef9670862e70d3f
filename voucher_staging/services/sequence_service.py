"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Hands out strictly increasing numbers per named sequence.  The
    ``sequence_counters`` row is locked with ``SELECT ... FOR UPDATE`` so
    concurrent allocations serialize.

Architecture position:
    Services -- called by VoucherWriter for the voucher sequence number.

Invariants enforced:
    - The counter row is the only source of the next value; max()+1 over
      the vouchers table is never used.
    - The increment is only visible once the caller's transaction commits.
      A rollback returns the value.

Failure modes:
    - IntegrityError when two transactions create the same counter at once
      (handled with a savepoint rollback and a locked re-read).
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from voucher_staging.logging_config import get_logger
from voucher_staging.models.sequence import SequenceCounter
from voucher_staging.services.base import BaseService

logger = get_logger("services.sequence")


class SequenceService(BaseService[SequenceCounter]):
    """
    Contract:
        ``next_value(name)`` returns the next strictly monotonic integer for
        ``name``.  Never commits.

    Usage:
        with transactional_scope(factory) as session:
            seq = SequenceService(session).next_value(SequenceService.VOUCHER)
    """

    VOUCHER = "voucher"

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self.session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock (or create) the counter row, increment it and return the value.

        Postconditions:
            - Returns an integer > 0 greater than every value previously
              committed for ``sequence_name``.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use; another transaction may create it concurrently
            savepoint = self.session.begin_nested()
            try:
                self.session.add(SequenceCounter(name=sequence_name, current_value=1))
                self.session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                self.session.expire_all()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self.session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing; None if never allocated."""
        counter = self.session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
