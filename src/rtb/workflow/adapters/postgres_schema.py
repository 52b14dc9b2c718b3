"""PostgreSQL schema for the workflow stores.

Applied by ``main.py init-db``. Every statement is idempotent.
"""

import logging

from ...core.database import database_transaction

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schools (
    id UUID PRIMARY KEY,
    school_code TEXT NOT NULL UNIQUE,
    school_name TEXT NOT NULL,
    district TEXT NOT NULL,
    province TEXT,
    status TEXT NOT NULL DEFAULT 'Active' CHECK (status IN ('Active', 'Inactive')),
    representative_id UUID
);

CREATE TABLE IF NOT EXISTS devices (
    id UUID PRIMARY KEY,
    serial_number TEXT NOT NULL UNIQUE,
    category TEXT NOT NULL,
    brand TEXT NOT NULL,
    model TEXT NOT NULL,
    condition TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'Available',
    school_id UUID REFERENCES schools(id),
    asset_tag TEXT UNIQUE,
    specifications TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT devices_tag_iff_assigned CHECK (
        (status = 'Assigned') = (asset_tag IS NOT NULL AND school_id IS NOT NULL)
    )
);

CREATE INDEX IF NOT EXISTS idx_devices_status ON devices(status);
CREATE INDEX IF NOT EXISTS idx_devices_school ON devices(school_id);
CREATE INDEX IF NOT EXISTS idx_devices_created ON devices(created_at DESC);

CREATE TABLE IF NOT EXISTS device_applications (
    id UUID PRIMARY KEY,
    school_id UUID NOT NULL REFERENCES schools(id),
    applicant_id UUID NOT NULL,
    requested JSONB NOT NULL,
    purpose TEXT NOT NULL,
    justification TEXT,
    letter_document_ref TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'Pending',
    is_eligible BOOLEAN,
    eligibility_notes TEXT,
    review_notes TEXT,
    reviewed_by UUID,
    reviewed_at TIMESTAMPTZ,
    assigned_devices JSONB NOT NULL DEFAULT '[]'::jsonb,
    assigned_by UUID,
    assigned_at TIMESTAMPTZ,
    confirmed_at TIMESTAMPTZ,
    confirmation_notes TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_applications_school ON device_applications(school_id);
CREATE INDEX IF NOT EXISTS idx_applications_status ON device_applications(status);

-- At most one open application per school
CREATE UNIQUE INDEX IF NOT EXISTS uq_applications_open_per_school
    ON device_applications(school_id)
    WHERE status IN ('Pending', 'Under Review');

CREATE TABLE IF NOT EXISTS asset_tag_sequences (
    school_id UUID NOT NULL REFERENCES schools(id),
    category TEXT NOT NULL,
    last_value INTEGER NOT NULL CHECK (last_value >= 0),
    PRIMARY KEY (school_id, category)
);
"""


async def apply_schema(pool) -> None:
    """Create tables and indexes if they do not exist."""
    async with database_transaction(pool) as conn:
        await conn.execute(SCHEMA_SQL)
    logger.info("Database schema applied")
