"""create aso_ruleset_overrides

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

from app.core.constants import SCOPE_COLUMNS_CHECK_CLAUSE, SCOPE_LAYER_CHECK_CLAUSE

# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    op.create_table(
        "aso_ruleset_overrides",
        sa.Column(
            "override_id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("kind", sa.String(50), nullable=False),
        sa.Column("scope_layer", sa.String(20), nullable=False),
        sa.Column("vertical", sa.String(50)),
        sa.Column("market", sa.String(10)),
        sa.Column("organization_id", sa.String(64)),
        sa.Column("app_id", sa.String(64)),
        sa.Column("payload", postgresql.JSONB, nullable=False),
        sa.Column("notes", sa.Text),
        sa.Column("version", sa.Integer, nullable=False, server_default=sa.text("1")),
        sa.Column(
            "is_active", sa.Boolean, nullable=False, server_default=sa.text("true")
        ),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
        sa.CheckConstraint(SCOPE_LAYER_CHECK_CLAUSE, name="ck_override_scope_layer"),
        sa.CheckConstraint(
            SCOPE_COLUMNS_CHECK_CLAUSE, name="ck_override_scope_columns"
        ),
        sa.CheckConstraint("version >= 1", name="ck_override_version_positive"),
    )

    # loader reads active rows of one scope at a time
    op.create_index(
        "idx_ruleset_overrides_scope",
        "aso_ruleset_overrides",
        ["scope_layer", "vertical", "market", "organization_id", "app_id"],
        postgresql_where=sa.text("is_active"),
    )
    op.create_index(
        "idx_ruleset_overrides_kind", "aso_ruleset_overrides", ["kind"]
    )


def downgrade() -> None:
    op.drop_index("idx_ruleset_overrides_kind", table_name="aso_ruleset_overrides")
    op.drop_index("idx_ruleset_overrides_scope", table_name="aso_ruleset_overrides")
    op.drop_table("aso_ruleset_overrides")
