"""
Voucher Service - discount validation and atomic redemption
"""
import logging
import secrets
import string
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cinema_booking.core.database import transaction
from cinema_booking.core.exceptions import VoucherInvalidError, VoucherNotFoundError
from cinema_booking.core.metrics import voucher_redemptions_total
from cinema_booking.models import Voucher

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 12
CENT = Decimal("0.01")


class VoucherService:
    """Service for vouchers; usage is only consumed when a payment is confirmed"""

    @staticmethod
    def generate_code() -> str:
        return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))

    @staticmethod
    def apply_discount(amount: Decimal, fraction: Decimal) -> Decimal:
        """Amount minus the discount; the discount itself is rounded half-up to cents"""
        discount = (Decimal(amount) * Decimal(fraction)).quantize(CENT, rounding=ROUND_HALF_UP)
        return Decimal(amount) - discount

    @staticmethod
    def _check_redeemable(voucher: Voucher, now: Optional[datetime] = None):
        if voucher.is_expired(now):
            raise VoucherInvalidError(f"Voucher {voucher.code} has expired", voucher_id=voucher.id)
        if voucher.is_exhausted:
            raise VoucherInvalidError(f"Voucher {voucher.code} has no usages left", voucher_id=voucher.id)

    @staticmethod
    async def get_by_code(db: AsyncSession, code: str, now: Optional[datetime] = None) -> Voucher:
        """Look up a redeemable voucher by its code"""
        result = await db.execute(
            select(Voucher).where(Voucher.code == code).execution_options(populate_existing=True)
        )
        voucher = result.scalar_one_or_none()
        if not voucher:
            raise VoucherNotFoundError(f"Voucher {code} not found")
        VoucherService._check_redeemable(voucher, now)
        return voucher

    @staticmethod
    async def validate_for_checkout(db: AsyncSession, voucher_id: int, now: Optional[datetime] = None) -> Voucher:
        """Any reason the voucher cannot be applied is reported as VoucherInvalidError"""
        result = await db.execute(
            select(Voucher).where(Voucher.id == voucher_id).execution_options(populate_existing=True)
        )
        voucher = result.scalar_one_or_none()
        if not voucher:
            raise VoucherInvalidError(f"Voucher {voucher_id} does not exist", voucher_id=voucher_id)
        VoucherService._check_redeemable(voucher, now)
        return voucher

    @staticmethod
    async def redeem(db: AsyncSession, voucher_id: int) -> bool:
        """
        Consume one usage if the cap allows it.

        Conditional increment, so concurrent confirmations can never push usages
        past max_usages. Must run inside the confirming transaction.
        """
        result = await db.execute(
            update(Voucher)
            .where(Voucher.id == voucher_id, Voucher.usages < Voucher.max_usages)
            .values(usages=Voucher.usages + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return False
        voucher_redemptions_total.inc()
        return True

    @staticmethod
    async def create_voucher(
        db: AsyncSession,
        value: Decimal,
        valid_until: datetime,
        max_usages: int = 1,
        code: Optional[str] = None,
    ) -> Voucher:
        value = Decimal(value)
        if not Decimal(0) < value < Decimal(1):
            raise VoucherInvalidError("Voucher value must be a fraction between 0 and 1")
        if valid_until <= datetime.utcnow():
            raise VoucherInvalidError("Voucher expiry must be in the future")
        if max_usages < 1:
            raise VoucherInvalidError("Voucher must allow at least one usage")

        code = code or VoucherService.generate_code()
        existing = await db.execute(select(Voucher.id).where(Voucher.code == code))
        if existing.first():
            raise VoucherInvalidError(f"Voucher code {code} already exists")

        voucher = Voucher(
            code=code,
            value=value,
            valid_until=valid_until,
            max_usages=max_usages,
            usages=0,
        )
        async with transaction(db, "create_voucher", code):
            db.add(voucher)

        logger.info(f"Voucher {voucher.code} created", extra={"voucher_id": voucher.id})
        return voucher
