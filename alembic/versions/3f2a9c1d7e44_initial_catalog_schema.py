"""initial catalog schema

Revision ID: 3f2a9c1d7e44
Revises:
Create Date: 2026-10-16 09:12:40.118203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7e44'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create catalog, ingestion and extraction tables."""

    # 1. Catalog
    op.create_table(
        'books',
        sa.Column('id', sa.Uuid(), nullable=False, primary_key=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('author', sa.String(), nullable=False),
        sa.Column('published_year', sa.Integer(), nullable=True),
        sa.Column('language', sa.String(3), nullable=True),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('source', sa.String(), nullable=False),
        sa.Column('source_identifier', sa.String(), nullable=False),
        sa.Column('pdf_url', sa.String(), nullable=True),
        sa.Column('cover_url', sa.String(), nullable=True),
        sa.Column('genres', sa.JSON(), nullable=True),
        sa.Column('subgenre', sa.String(), nullable=True),
        sa.Column('book_metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('source', 'source_identifier', name='uq_books_source_identifier'),
    )
    op.create_index('ix_books_title', 'books', ['title'])
    op.create_index('ix_books_author', 'books', ['author'])
    op.create_index('ix_books_published_year', 'books', ['published_year'])
    op.create_index('ix_books_source', 'books', ['source'])

    # 2. Ingestion bookkeeping
    op.create_table(
        'ingestion_logs',
        sa.Column('id', sa.Uuid(), nullable=False, primary_key=True),
        sa.Column('job_type', sa.String(), nullable=False, server_default='scheduled'),
        sa.Column('status', sa.String(), nullable=False, server_default='running'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('books_processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('books_added', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('books_skipped', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('books_failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_details', sa.JSON(), nullable=True),
    )
    op.create_index('ix_ingestion_logs_job_type', 'ingestion_logs', ['job_type'])
    op.create_index('ix_ingestion_logs_status', 'ingestion_logs', ['status'])
    op.create_index('ix_ingestion_logs_started_at', 'ingestion_logs', ['started_at'])

    op.create_table(
        'ingestion_state',
        sa.Column('source_id', sa.String(), nullable=False, primary_key=True),
        sa.Column('last_page', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('last_cursor', sa.String(), nullable=True),
        sa.Column('last_offset', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_ingested', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_run_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_run_status', sa.String(), nullable=False, server_default='idle'),
        sa.Column('last_run_added', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_run_skipped', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_run_failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_paused', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('paused_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paused_by', sa.String(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'source_configurations',
        sa.Column('source_id', sa.String(), nullable=False, primary_key=True),
        sa.Column('display_name', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('website', sa.String(), nullable=True),
        sa.Column('supported_formats', sa.JSON(), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('rate_limit_ms', sa.Integer(), nullable=False, server_default='1500'),
        sa.Column('batch_size', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('source_specific_config', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_source_configurations_enabled', 'source_configurations', ['enabled'])

    op.create_table(
        'source_statistics',
        sa.Column('source_id', sa.String(), nullable=False, primary_key=True),
        sa.Column('total_books', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_fetch_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'ingestion_filter_stats',
        sa.Column('id', sa.Uuid(), nullable=False, primary_key=True),
        sa.Column('job_id', sa.String(), nullable=False),
        sa.Column('book_identifier', sa.String(), nullable=False),
        sa.Column('book_title', sa.String(), nullable=True),
        sa.Column('book_author', sa.String(), nullable=True),
        sa.Column('book_genres', sa.JSON(), nullable=True),
        sa.Column('filter_result', sa.String(), nullable=False),
        sa.Column('filter_reason', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_ingestion_filter_stats_job_id', 'ingestion_filter_stats', ['job_id'])
    op.create_index('ix_ingestion_filter_stats_filter_result', 'ingestion_filter_stats', ['filter_result'])

    # 3. Extraction jobs
    op.create_table(
        'extraction_jobs',
        sa.Column('id', sa.Uuid(), nullable=False, primary_key=True),
        sa.Column('source_url', sa.String(), nullable=False),
        sa.Column('created_by', sa.String(), nullable=True),
        sa.Column('max_time_minutes', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('max_books', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('books_extracted', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('books_queued', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_extraction_jobs_created_by', 'extraction_jobs', ['created_by'])
    op.create_index('ix_extraction_jobs_status', 'extraction_jobs', ['status'])
    op.create_index('ix_extraction_jobs_created_at', 'extraction_jobs', ['created_at'])

    op.create_table(
        'extracted_books',
        sa.Column('id', sa.Uuid(), nullable=False, primary_key=True),
        sa.Column('job_id', sa.Uuid(), sa.ForeignKey('extraction_jobs.id'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('author', sa.String(), nullable=True),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('synopsis', sa.String(), nullable=True),
        sa.Column('cover_url', sa.String(), nullable=True),
        sa.Column('pdf_url', sa.String(), nullable=True),
        sa.Column('source_pdf_url', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='processing'),
        sa.Column('error_message', sa.String(), nullable=True),
        sa.Column('extracted_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_extracted_books_job_id', 'extracted_books', ['job_id'])

    op.create_table(
        'extraction_logs',
        sa.Column('id', sa.Uuid(), nullable=False, primary_key=True),
        sa.Column('job_id', sa.Uuid(), sa.ForeignKey('extraction_jobs.id'), nullable=False),
        sa.Column('level', sa.String(), nullable=False, server_default='info'),
        sa.Column('message', sa.String(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_extraction_logs_job_id', 'extraction_logs', ['job_id'])
    op.create_index('ix_extraction_logs_created_at', 'extraction_logs', ['created_at'])


def downgrade() -> None:
    """Drop all catalog tables."""
    op.drop_table('extraction_logs')
    op.drop_table('extracted_books')
    op.drop_table('extraction_jobs')
    op.drop_table('ingestion_filter_stats')
    op.drop_table('source_statistics')
    op.drop_table('source_configurations')
    op.drop_table('ingestion_state')
    op.drop_table('ingestion_logs')
    op.drop_table('books')
