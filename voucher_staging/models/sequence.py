"""
Sequence counter table backing SequenceService.

Each row is a named sequence with its current value.  The row is locked
(``SELECT ... FOR UPDATE``) whenever a value is allocated.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from voucher_staging.db.base import Base


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    # Sequence name (e.g. "voucher")
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
