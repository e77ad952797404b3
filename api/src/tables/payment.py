from .base import Base
from typing import Literal
from datetime import datetime
from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from .enrollment import Enrollment


Status = Literal['pending', 'paid', 'failed', 'expired']


class PaymentRecord(Base):
    __tablename__ = 'payment'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    # `external_id` on the Xendit side
    idempotency_token: Mapped[str] = mapped_column(String(255), unique=True)
    user_ref: Mapped[int] = mapped_column(index=True)
    course_ref: Mapped[int] = mapped_column(index=True)
    status: Mapped[Status] = mapped_column(String(10), index=True)

    amount: Mapped[int] = mapped_column()
    currency: Mapped[str] = mapped_column(String(3), default='IDR')

    provider_invoice_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(100), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True, index=True)
    enrollment_ref: Mapped[int | None] = mapped_column(ForeignKey(Enrollment.id, ondelete='RESTRICT'), nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(index=True)
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True)
