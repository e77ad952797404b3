"""payment and enrollment

Revision ID: 5c1e7a9b2d31
Revises:
Create Date: 2026-10-19 10:42:17.208113

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5c1e7a9b2d31'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'enrollment',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_ref', sa.Integer(), nullable=False),
        sa.Column('course_ref', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=10), nullable=False),
        sa.Column('enrolled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('access_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_ref', 'course_ref')
    )
    op.create_index(op.f('ix_enrollment_user_ref'), 'enrollment', ['user_ref'], unique=False)
    op.create_index(op.f('ix_enrollment_course_ref'), 'enrollment', ['course_ref'], unique=False)

    op.create_table(
        'payment',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('idempotency_token', sa.String(length=255), nullable=False),
        sa.Column('user_ref', sa.Integer(), nullable=False),
        sa.Column('course_ref', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=10), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('provider_invoice_ref', sa.String(length=255), nullable=True),
        sa.Column('payment_method', sa.String(length=100), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('enrollment_ref', sa.Integer(), nullable=True),
        sa.Column('reviewed_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['enrollment_ref'], ['enrollment.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_token')
    )
    op.create_index(op.f('ix_payment_user_ref'), 'payment', ['user_ref'], unique=False)
    op.create_index(op.f('ix_payment_course_ref'), 'payment', ['course_ref'], unique=False)
    op.create_index(op.f('ix_payment_status'), 'payment', ['status'], unique=False)
    op.create_index(op.f('ix_payment_paid_at'), 'payment', ['paid_at'], unique=False)
    op.create_index(op.f('ix_payment_created_at'), 'payment', ['created_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('payment')
    op.drop_table('enrollment')
