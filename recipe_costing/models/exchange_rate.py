"""
ExchangeRate model: one row per (base currency, currency) pair.

``rate`` is units of ``currency`` per 1 unit of ``base_currency``. The base
currency itself is never stored; its rate is 1 by definition.
"""

from sqlalchemy import CheckConstraint, Column, Numeric, String, UniqueConstraint

from .base import BaseModel


class ExchangeRate(BaseModel):
    __tablename__ = "exchange_rates"

    base_currency = Column(String(3), nullable=False)
    currency = Column(String(3), nullable=False)
    rate = Column(Numeric(14, 6), nullable=False)

    __table_args__ = (
        UniqueConstraint("base_currency", "currency", name="uq_exchange_rate_pair"),
        CheckConstraint("rate > 0", name="ck_exchange_rate_positive"),
        CheckConstraint("currency != base_currency", name="ck_exchange_rate_not_base"),
    )

    def __repr__(self) -> str:
        return f"ExchangeRate({self.base_currency}->{self.currency}={self.rate})"
