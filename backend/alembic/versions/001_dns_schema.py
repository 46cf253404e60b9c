"""DNS schema with tenant row-level security

Revision ID: 001_dns_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_dns_schema'
down_revision = None
branch_labels = None
depends_on = None

TENANT_TABLES = ('dns_zones', 'dns_records', 'tsig_keys', 'audit_logs')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade():
    op.create_table('dns_zones',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False, server_default='master'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('primary_ns', sa.String(length=255), nullable=True),
        sa.Column('admin_email', sa.String(length=255), nullable=True),
        sa.Column('serial', sa.BigInteger(), nullable=False, server_default='1'),
        sa.Column('refresh_interval', sa.Integer(), nullable=False, server_default='3600'),
        sa.Column('retry_interval', sa.Integer(), nullable=False, server_default='1800'),
        sa.Column('expire_interval', sa.Integer(), nullable=False, server_default='604800'),
        sa.Column('minimum_ttl', sa.Integer(), nullable=False, server_default='300'),
        sa.Column('created_by', sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'name', name='uq_dns_zones_tenant_name'),
        sa.CheckConstraint("type IN ('master', 'slave', 'forward')", name='check_zone_type'),
        sa.CheckConstraint("length(name) >= 1", name='check_zone_name_not_empty'),
        sa.CheckConstraint("serial >= 1", name='check_serial_positive'),
    )
    op.create_index('ix_dns_zones_tenant_id', 'dns_zones', ['tenant_id'])

    op.create_table('dns_records',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), nullable=False),
        sa.Column('zone_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=10), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('ttl', sa.Integer(), nullable=False, server_default='300'),
        sa.Column('priority', sa.Integer(), nullable=True),
        sa.Column('weight', sa.Integer(), nullable=True),
        sa.Column('port', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('created_by', sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['zone_id'], ['dns_zones.id'], ondelete='CASCADE'),
        sa.CheckConstraint(
            "type IN ('A', 'AAAA', 'CNAME', 'MX', 'NS', 'PTR', 'SOA', 'SRV', 'TXT', 'CAA')",
            name='check_record_type'
        ),
        sa.CheckConstraint("status IN ('active', 'deleted')", name='check_record_status'),
        sa.CheckConstraint("ttl >= 1 AND ttl <= 2147483647", name='check_ttl_range'),
        sa.CheckConstraint("priority IS NULL OR (priority >= 0 AND priority <= 65535)", name='check_priority_range'),
        sa.CheckConstraint("weight IS NULL OR (weight >= 0 AND weight <= 65535)", name='check_weight_range'),
        sa.CheckConstraint("port IS NULL OR (port >= 1 AND port <= 65535)", name='check_port_range'),
    )
    op.create_index('ix_dns_records_tenant_id', 'dns_records', ['tenant_id'])
    op.create_index('idx_dns_records_zone_name_type', 'dns_records', ['zone_id', 'name', 'type'])

    op.create_table('tsig_keys',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('algorithm', sa.String(length=50), nullable=False, server_default='hmac-sha256'),
        sa.Column('secret', sa.Text(), nullable=False),
        sa.Column('created_by', sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.Column('last_used', sa.DateTime(), nullable=True),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'name', name='uq_tsig_keys_tenant_name'),
        sa.CheckConstraint("usage_count >= 0", name='check_usage_count_non_negative'),
    )
    op.create_index('ix_tsig_keys_tenant_id', 'tsig_keys', ['tenant_id'])

    op.create_table('audit_logs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=True),
        sa.Column('operation', sa.String(length=100), nullable=False),
        sa.Column('resource_type', sa.String(length=50), nullable=False),
        sa.Column('resource_id', sa.String(length=500), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('source_ip', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("length(operation) >= 1", name='check_operation_not_empty'),
        sa.CheckConstraint("length(resource_type) >= 1", name='check_resource_type_not_empty'),
    )
    op.create_index('ix_audit_logs_tenant_id', 'audit_logs', ['tenant_id'])
    op.create_index('idx_audit_logs_tenant_created', 'audit_logs', ['tenant_id', 'created_at'])
    op.create_index('idx_audit_logs_operation', 'audit_logs', ['operation'])

    # Row-level security only exists on Postgres
    if op.get_bind().dialect.name != 'postgresql':
        return

    for table in TENANT_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")
        op.execute(
            f"CREATE POLICY tenant_isolation_{table} ON {table} "
            f"USING (tenant_id = current_setting('app.current_tenant_id', true)) "
            f"WITH CHECK (tenant_id = current_setting('app.current_tenant_id', true))"
        )


def downgrade():
    if op.get_bind().dialect.name == 'postgresql':
        for table in TENANT_TABLES:
            op.execute(f"DROP POLICY IF EXISTS tenant_isolation_{table} ON {table}")

    op.drop_table('audit_logs')
    op.drop_table('tsig_keys')
    op.drop_table('dns_records')
    op.drop_table('dns_zones')
