from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.sql import func

from app.core.constants import (
    SCOPE_COLUMNS_CHECK_CLAUSE,
    SCOPE_LAYER_CHECK_CLAUSE,
)
from app.models.base import Base


class AsoRulesetOverride(Base):
    """One persisted scoring override for a single layer and scope.

    ``kind`` selects the shape of the JSONB ``payload`` (token relevance,
    hook pattern, stopwords, KPI weight, formula or recommendation
    template).  The scope columns that may be set depend on
    ``scope_layer``.  Rows are never edited in place by the admin API:
    a change inserts a new row with a higher ``version`` and removal
    only clears ``is_active``; inactive rows never feed the ruleset loader.
    """

    __tablename__ = "aso_ruleset_overrides"
    override_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    kind = Column(String(50), nullable=False)
    scope_layer = Column(String(20), nullable=False)
    vertical = Column(String(50))
    market = Column(String(10))
    organization_id = Column(String(64))
    app_id = Column(String(64))
    payload = Column(JSONB, nullable=False)
    notes = Column(Text)
    version = Column(Integer, nullable=False, server_default=text("1"))
    is_active = Column(Boolean, nullable=False, server_default=text("true"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index(
            "idx_ruleset_overrides_scope",
            "scope_layer",
            "vertical",
            "market",
            "organization_id",
            "app_id",
            postgresql_where=text("is_active"),
        ),
        Index("idx_ruleset_overrides_kind", "kind"),
        CheckConstraint(SCOPE_LAYER_CHECK_CLAUSE, name="ck_override_scope_layer"),
        CheckConstraint(SCOPE_COLUMNS_CHECK_CLAUSE, name="ck_override_scope_columns"),
        CheckConstraint("version >= 1", name="ck_override_version_positive"),
    )
