"""
Payment model - one provider payment intent per booking
"""
from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, Enum
from sqlalchemy.orm import relationship

from cinema_booking.core.database import Base


class PaymentStatus(PyEnum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"  # booking left PENDING before the provider confirmed


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True)
    voucher_id = Column(Integer, ForeignKey("vouchers.id", ondelete="SET NULL"), nullable=True, index=True)
    provider = Column(String(50), nullable=False, default="stripe")
    provider_payment_id = Column(String(255), nullable=False, unique=True, index=True)
    status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="eur")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    paid_at = Column(DateTime, nullable=True)

    booking = relationship("Booking", back_populates="payment")
    voucher = relationship("Voucher")

    def __repr__(self):
        return (f"<Payment(id={self.id}, booking_id={self.booking_id}, "
                f"intent='{self.provider_payment_id}', status='{self.status.value}')>")
