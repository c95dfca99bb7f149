"""Initial database schema

Revision ID: 0001
Revises:
Create Date: 2025-08-02 12:30:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Create booking_headers table
    op.create_table('booking_headers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('number', sa.String(length=64), nullable=False),
        sa.Column('source_id', sa.String(length=64), nullable=True),
        sa.Column('trip_name', sa.String(length=255), nullable=True),
        sa.Column('status_code', sa.String(length=32), nullable=True),
        sa.Column('status_name', sa.String(length=255), nullable=True),
        sa.Column('company_name', sa.String(length=255), nullable=True),
        sa.Column('deptor_place', sa.String(length=255), nullable=True),
        sa.Column('contact_first_name', sa.String(length=128), nullable=True),
        sa.Column('contact_middle_name', sa.String(length=64), nullable=True),
        sa.Column('contact_surname', sa.String(length=128), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('startdate', sa.Date(), nullable=True),
        sa.Column('enddate', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_booking_headers_number'), 'booking_headers', ['number'], unique=True)
    op.create_index(op.f('ix_booking_headers_startdate'), 'booking_headers', ['startdate'], unique=False)
    op.create_index(op.f('ix_booking_headers_enddate'), 'booking_headers', ['enddate'], unique=False)

    # Create booking_elements table
    op.create_table('booking_elements',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('booking_id', sa.Integer(), nullable=False),
        sa.Column('source_element_id', sa.String(length=64), nullable=False),
        sa.Column('element_name', sa.String(length=255), nullable=True),
        sa.Column('element_type_code', sa.String(length=32), nullable=True),
        sa.Column('supplier_place', sa.String(length=255), nullable=True),
        sa.Column('supplier_country', sa.String(length=128), nullable=True),
        sa.Column('startdate', sa.Date(), nullable=True),
        sa.Column('starttime', sa.String(length=16), nullable=True),
        sa.Column('enddate', sa.Date(), nullable=True),
        sa.Column('endtime', sa.String(length=16), nullable=True),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('amount_description', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['booking_headers.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_id', 'source_element_id', name='uq_booking_element_source')
    )
    op.create_index(op.f('ix_booking_elements_booking_id'), 'booking_elements', ['booking_id'], unique=False)
    op.create_index(op.f('ix_booking_elements_element_type_code'), 'booking_elements', ['element_type_code'], unique=False)

    # Create sync_audit_records table
    op.create_table('sync_audit_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('booking_number', sa.String(length=64), nullable=False),
        sa.Column('trigger_kind', sa.String(length=16), nullable=False),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sync_audit_records_booking_number'), 'sync_audit_records', ['booking_number'], unique=False)
    op.create_index(op.f('ix_sync_audit_records_synced_at'), 'sync_audit_records', ['synced_at'], unique=False)

    # Create sync_state table
    op.create_table('sync_state',
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('watermark', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('name')
    )

    # Create users table
    op.create_table('users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password', sa.String(length=255), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('is_verified', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
    op.drop_table('sync_state')
    op.drop_index(op.f('ix_sync_audit_records_synced_at'), table_name='sync_audit_records')
    op.drop_index(op.f('ix_sync_audit_records_booking_number'), table_name='sync_audit_records')
    op.drop_table('sync_audit_records')
    op.drop_index(op.f('ix_booking_elements_element_type_code'), table_name='booking_elements')
    op.drop_index(op.f('ix_booking_elements_booking_id'), table_name='booking_elements')
    op.drop_table('booking_elements')
    op.drop_index(op.f('ix_booking_headers_enddate'), table_name='booking_headers')
    op.drop_index(op.f('ix_booking_headers_startdate'), table_name='booking_headers')
    op.drop_index(op.f('ix_booking_headers_number'), table_name='booking_headers')
    op.drop_table('booking_headers')
