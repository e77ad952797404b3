from .base import Base
from typing import Literal
from datetime import datetime
from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column


Status = Literal['active', 'completed', 'expired', 'cancelled']


class Enrollment(Base):
    __tablename__ = 'enrollment'
    __table_args__ = (
        UniqueConstraint('user_ref', 'course_ref'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_ref: Mapped[int] = mapped_column(index=True)
    course_ref: Mapped[int] = mapped_column(index=True)
    status: Mapped[Status] = mapped_column(String(10))
    enrolled_at: Mapped[datetime] = mapped_column()
    # None is unlimited access
    access_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column()
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True)
