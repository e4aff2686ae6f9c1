"""Create contribution ledger tables

Revision ID: 5e1a7c3b9d20
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5e1a7c3b9d20'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""

    op.create_table('institutions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('cuit', sa.String(length=11), nullable=True, comment='Digits only'),
        sa.Column('address', sa.String(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cuit')
    )

    op.create_table('members',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('institution_id', sa.UUID(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=False, comment='Upper-case'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['institution_id'], ['institutions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('institution_id', 'full_name', name='uq_members_institution_full_name')
    )

    op.create_table('periods',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('institution_id', sa.UUID(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('concept', sa.String(), nullable=False),
        sa.Column('people_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['institution_id'], ['institutions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'institution_id', 'month', 'year', 'concept',
            name='uq_periods_institution_month_year_concept'
        )
    )

    op.create_table('documents',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('file_name', sa.String(), nullable=False),
        sa.Column('content_hash', sa.String(length=64), nullable=False),
        sa.Column('storage_path', sa.String(), nullable=True),
        sa.Column('stored_file_name', sa.String(), nullable=True),
        sa.Column('kind', sa.String(), nullable=True),
        sa.Column('pdf_type', sa.String(), nullable=True),
        sa.Column('parse_status', sa.String(), nullable=False, server_default='unparsed'),
        sa.Column('parse_error', sa.Text(), nullable=True),
        sa.Column('page_count', sa.Integer(), nullable=True),
        sa.Column('people_count', sa.Integer(), nullable=True),
        sa.Column('total_amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('period_id', sa.UUID(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['period_id'], ['periods.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('content_hash')
    )
    op.create_index('ix_documents_parse_status', 'documents', ['parse_status'], unique=False)

    op.create_table('contribution_lines',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('document_id', sa.UUID(), nullable=False),
        sa.Column('period_id', sa.UUID(), nullable=True),
        sa.Column('member_id', sa.UUID(), nullable=True),
        sa.Column('raw_name', sa.String(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=True),
        sa.Column('fee_amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('gross_amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['document_id'], ['documents.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['period_id'], ['periods.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_id', 'member_id', name='uq_contribution_lines_document_member')
    )
    op.create_index('ix_contribution_lines_period_id', 'contribution_lines', ['period_id'], unique=False)

    op.create_table('transfers',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('period_id', sa.UUID(), nullable=False),
        sa.Column('document_id', sa.UUID(), nullable=True),
        sa.Column('transferred_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('reference', sa.String(), nullable=True),
        sa.Column('operation_number', sa.String(), nullable=True),
        sa.Column('origin_account', sa.String(), nullable=True),
        sa.Column('destination_cbu', sa.String(length=22), nullable=True),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('amount_to_transfer', sa.Numeric(14, 2), nullable=True),
        sa.Column('total_amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('ordering_cuit', sa.String(length=11), nullable=True),
        sa.Column('ordering_name', sa.String(), nullable=True),
        sa.Column('ordering_address', sa.String(), nullable=True),
        sa.Column('beneficiary_name', sa.String(), nullable=True),
        sa.Column('beneficiary_cuit', sa.String(), nullable=True),
        sa.Column('bank_name', sa.String(), nullable=True),
        sa.Column('operation_type', sa.String(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['document_id'], ['documents.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['period_id'], ['periods.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('period_id')
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('transfers')
    op.drop_index('ix_contribution_lines_period_id', table_name='contribution_lines')
    op.drop_table('contribution_lines')
    op.drop_index('ix_documents_parse_status', table_name='documents')
    op.drop_table('documents')
    op.drop_table('periods')
    op.drop_table('members')
    op.drop_table('institutions')
