"""Initial migration

Revision ID: 001_initial
Revises: 
Create Date: 2026-10-17 09:12:00

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create export_templates table
    op.create_table(
        'export_templates',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('template_type', sa.Enum('SINGLE_SHEET', 'MULTI_SHEET', name='exporttemplatetype'), nullable=False),
        sa.Column('single_sheet_config', sa.JSON(), nullable=True),
        sa.Column('multi_sheet_config', sa.JSON(), nullable=True),
        sa.Column('created_by', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_export_templates_name'), 'export_templates', ['name'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_export_templates_name'), table_name='export_templates')
    op.drop_table('export_templates')
