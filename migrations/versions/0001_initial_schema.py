"""
initial schema: cost records, recommendations, savings tracking, tradeoff catalogue

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18

Recommendations carry a partial unique index over
(tenant_id, provider, resource_id, action) WHERE status = 'ACTIVE';
the recommendation upsert targets it with ON CONFLICT.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


ENUMS = {
    "cloudprovider": ("AZURE", "AWS", "GCP"),
    "resourcetype": (
        "COMPUTE", "STORAGE", "DATABASE", "NETWORK", "KUBERNETES", "SERVERLESS",
        "ANALYTICS", "CACHING", "MESSAGING", "MONITORING", "UNKNOWN",
    ),
    "recommendationaction": (
        "DOWNSIZE_INSTANCE", "UPSIZE_INSTANCE", "PURCHASE_RESERVATION", "DELETE_RESOURCE",
        "CHANGE_REGION", "CHANGE_STORAGE_TIER", "USE_SPOT_INSTANCES", "SCHEDULE_SHUTDOWN",
        "CONSOLIDATE_RESOURCES", "MIGRATE_SERVICE", "NO_ACTION",
    ),
    "risklevel": ("LOW", "MEDIUM", "HIGH"),
    "recommendationstatus": ("ACTIVE", "IMPLEMENTED", "DISMISSED", "EXPIRED", "VALIDATING"),
    "validationstatus": ("PENDING", "VALIDATED", "PARTIAL", "FAILED"),
    "alternativecategory": ("DOWNSIZE", "UPSIZE", "DIFFERENT_FAMILY", "CROSS_CLOUD"),
}


def _enum(name: str) -> sa.types.TypeEngine:
    # Postgres types are created once up front and shared between tables
    values = ENUMS[name]
    return sa.Enum(*values, name=name).with_variant(
        postgresql.ENUM(*values, name=name, create_type=False), "postgresql"
    )


def _audit_columns():
    return [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name, values in ENUMS.items():
            postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        'cost_records',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.String(64), nullable=False),
        sa.Column('provider', _enum("cloudprovider"), nullable=False),
        sa.Column('resource_type', _enum("resourcetype"), nullable=False),
        sa.Column('resource_id', sa.String(512), nullable=False),
        sa.Column('resource_name', sa.String(255), nullable=True),
        sa.Column('sku', sa.String(128), nullable=True),
        sa.Column('vcpu', sa.Integer(), nullable=True),
        sa.Column('memory_gb', sa.Float(), nullable=True),
        sa.Column('storage_gb', sa.Float(), nullable=True),
        sa.Column('avg_cpu_utilization', sa.Float(), nullable=True),
        sa.Column('avg_memory_utilization', sa.Float(), nullable=True),
        sa.Column('region', sa.String(64), nullable=False),
        sa.Column('daily_cost', sa.Numeric(18, 6), nullable=False),
        sa.Column('record_date', sa.Date(), nullable=False),
        sa.Column('ingested_at', sa.DateTime(timezone=True), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_cost_records'),
        sa.UniqueConstraint('tenant_id', 'provider', 'resource_id', 'record_date',
                            name='uix_cost_record_resource_day'),
    )
    op.create_index('ix_cost_records_tenant_resource_date', 'cost_records',
                    ['tenant_id', 'resource_id', 'record_date'])

    op.create_table(
        'recommendations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.String(64), nullable=False),
        sa.Column('provider', _enum("cloudprovider"), nullable=False),
        sa.Column('resource_id', sa.String(512), nullable=False),
        sa.Column('resource_name', sa.String(255), nullable=True),
        sa.Column('resource_type', _enum("resourcetype"), nullable=False),
        sa.Column('action', _enum("recommendationaction"), nullable=False),
        sa.Column('summary', sa.String(500), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('current_config', sa.String(255), nullable=True),
        sa.Column('suggested_config', sa.String(255), nullable=True),
        sa.Column('estimated_monthly_savings', sa.Numeric(12, 2), nullable=False),
        sa.Column('savings_percentage', sa.Float(), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('risk_level', _enum("risklevel"), nullable=False),
        sa.Column('status', _enum("recommendationstatus"), nullable=False),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actioned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actioned_by', sa.String(255), nullable=True),
        sa.Column('feedback', sa.Text(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_recommendations'),
    )
    op.create_index(
        'uq_recommendations_active_key',
        'recommendations',
        ['tenant_id', 'provider', 'resource_id', 'action'],
        unique=True,
        postgresql_where=sa.text("status = 'ACTIVE'"),
        sqlite_where=sa.text("status = 'ACTIVE'"),
    )
    op.create_index('ix_recommendations_tenant_status', 'recommendations', ['tenant_id', 'status'])
    op.create_index('ix_recommendations_expires_at', 'recommendations', ['expires_at'])

    op.create_table(
        'implemented_recommendations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('recommendation_id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.String(64), nullable=False),
        sa.Column('resource_id', sa.String(512), nullable=False),
        sa.Column('provider', _enum("cloudprovider"), nullable=False),
        sa.Column('resource_type', _enum("resourcetype"), nullable=False),
        sa.Column('action', _enum("recommendationaction"), nullable=False),
        sa.Column('summary', sa.String(500), nullable=True),
        sa.Column('implemented_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('implemented_by', sa.String(255), nullable=True),
        sa.Column('expected_monthly_savings', sa.Numeric(12, 2), nullable=False),
        sa.Column('actual_monthly_savings', sa.Numeric(12, 2), nullable=True),
        sa.Column('cost_before_daily', sa.Numeric(12, 4), nullable=True),
        sa.Column('cost_after_daily', sa.Numeric(12, 4), nullable=True),
        sa.Column('scheduled_validation_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('validated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('validation_status', _enum("validationstatus"), nullable=False),
        sa.Column('validation_notes', sa.Text(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_implemented_recommendations'),
        sa.ForeignKeyConstraint(
            ['recommendation_id'], ['recommendations.id'],
            name='fk_implemented_recommendations_recommendation_id_recommendations',
            ondelete='CASCADE',
        ),
        sa.UniqueConstraint('recommendation_id', name='uq_implemented_recommendations_recommendation_id'),
    )
    op.create_index('ix_implemented_status_scheduled', 'implemented_recommendations',
                    ['validation_status', 'scheduled_validation_at'])
    op.create_index('ix_implemented_tenant', 'implemented_recommendations', ['tenant_id'])

    op.create_table(
        'resource_alternatives',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('provider', _enum("cloudprovider"), nullable=False),
        sa.Column('resource_type', _enum("resourcetype"), nullable=False),
        sa.Column('current_sku', sa.String(128), nullable=False),
        sa.Column('alternative_sku', sa.String(128), nullable=False),
        sa.Column('alternative_provider', _enum("cloudprovider"), nullable=False),
        sa.Column('vcpu', sa.Integer(), nullable=True),
        sa.Column('memory_gb', sa.Float(), nullable=True),
        sa.Column('estimated_hourly_price', sa.Float(), nullable=True),
        sa.Column('sku_family', sa.String(64), nullable=True),
        sa.Column('category', _enum("alternativecategory"), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_resource_alternatives'),
    )
    op.create_index('ix_resource_alternatives_lookup', 'resource_alternatives', ['provider', 'current_sku'])

    op.create_table(
        'tradeoff_dimensions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(64), nullable=False),
        sa.Column('display_name', sa.String(128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('default_weight', sa.Float(), nullable=False),
        sa.Column('higher_is_better', sa.Boolean(), nullable=False),
        sa.Column('display_order', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_tradeoff_dimensions'),
        sa.UniqueConstraint('name', name='uq_tradeoff_dimensions_name'),
    )

    op.create_table(
        'alternative_tradeoff_scores',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('alternative_id', sa.Uuid(), nullable=False),
        sa.Column('dimension_id', sa.Uuid(), nullable=False),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('explanation', sa.Text(), nullable=True),
        sa.Column('current_value', sa.String(255), nullable=True),
        sa.Column('alternative_value', sa.String(255), nullable=True),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_alternative_tradeoff_scores'),
        sa.ForeignKeyConstraint(
            ['alternative_id'], ['resource_alternatives.id'],
            name='fk_alternative_tradeoff_scores_alternative_id_resource_alternatives',
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['dimension_id'], ['tradeoff_dimensions.id'],
            name='fk_alternative_tradeoff_scores_dimension_id_tradeoff_dimensions',
            ondelete='CASCADE',
        ),
        sa.UniqueConstraint('alternative_id', 'dimension_id', name='uix_alternative_dimension'),
    )

    op.create_table(
        'tenant_preferences',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.String(64), nullable=False),
        sa.Column('minimum_savings_threshold', sa.Float(), nullable=False),
        sa.Column('include_multi_cloud', sa.Boolean(), nullable=False),
        sa.Column('minimum_confidence', sa.Float(), nullable=False),
        sa.Column('auto_dismiss_implemented', sa.Boolean(), nullable=False),
        sa.Column('dimension_weights', sa.JSON().with_variant(postgresql.JSONB(), "postgresql"), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_tenant_preferences'),
        sa.UniqueConstraint('tenant_id', name='uq_tenant_preferences_tenant_id'),
    )


def downgrade() -> None:
    op.drop_table('tenant_preferences')
    op.drop_table('alternative_tradeoff_scores')
    op.drop_table('tradeoff_dimensions')
    op.drop_index('ix_resource_alternatives_lookup', table_name='resource_alternatives')
    op.drop_table('resource_alternatives')
    op.drop_index('ix_implemented_tenant', table_name='implemented_recommendations')
    op.drop_index('ix_implemented_status_scheduled', table_name='implemented_recommendations')
    op.drop_table('implemented_recommendations')
    op.drop_index('ix_recommendations_expires_at', table_name='recommendations')
    op.drop_index('ix_recommendations_tenant_status', table_name='recommendations')
    op.drop_index('uq_recommendations_active_key', table_name='recommendations')
    op.drop_table('recommendations')
    op.drop_index('ix_cost_records_tenant_resource_date', table_name='cost_records')
    op.drop_table('cost_records')

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name in reversed(list(ENUMS)):
            postgresql.ENUM(name=name).drop(bind, checkfirst=True)
