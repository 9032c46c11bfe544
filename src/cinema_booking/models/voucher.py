"""
Voucher model - a discount fraction with an expiry and a usage cap
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Numeric, CheckConstraint

from cinema_booking.core.database import Base


class Voucher(Base):
    __tablename__ = "vouchers"
    __table_args__ = (
        CheckConstraint("usages <= max_usages", name="ck_voucher_usage_cap"),
        CheckConstraint("value > 0 AND value < 1", name="ck_voucher_fraction"),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(16), nullable=False, unique=True, index=True)
    value = Column(Numeric(5, 2), nullable=False)  # discount fraction, 0.20 == 20% off
    valid_until = Column(DateTime, nullable=False)
    max_usages = Column(Integer, nullable=False, default=1)
    usages = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Voucher(id={self.id}, code='{self.code}', usages={self.usages}/{self.max_usages})>"

    def is_expired(self, now: datetime = None) -> bool:
        return self.valid_until <= (now or datetime.utcnow())

    @property
    def is_exhausted(self) -> bool:
        return self.usages >= self.max_usages
