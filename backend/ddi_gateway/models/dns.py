"""
DNS-related SQLAlchemy models for the DDI gateway
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer,
    String, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship

from ..core.database import Base

RECORD_TYPES = ('A', 'AAAA', 'CNAME', 'MX', 'NS', 'PTR', 'SOA', 'SRV', 'TXT', 'CAA')
ZONE_TYPES = ('master', 'slave', 'forward')
TSIG_ALGORITHMS = (
    'hmac-md5', 'hmac-sha1', 'hmac-sha224', 'hmac-sha256', 'hmac-sha384', 'hmac-sha512'
)


def _new_id() -> str:
    return str(uuid.uuid4())


def _isoformat(value):
    return value.isoformat() if value else None


class Zone(Base):
    """DNS zone owned by a tenant"""
    __tablename__ = "dns_zones"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    zone_type = Column("type", String(20), nullable=False, default="master")
    status = Column(String(20), nullable=False, default="active")
    primary_ns = Column(String(255), nullable=True)
    admin_email = Column(String(255), nullable=True)
    serial = Column(BigInteger, nullable=False, default=1)
    refresh_interval = Column(Integer, nullable=False, default=3600)
    retry_interval = Column(Integer, nullable=False, default=1800)
    expire_interval = Column(Integer, nullable=False, default=604800)
    minimum_ttl = Column(Integer, nullable=False, default=300)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    records = relationship(
        "DNSRecord", back_populates="zone", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint('tenant_id', 'name', name='uq_dns_zones_tenant_name'),
        CheckConstraint("type IN ('master', 'slave', 'forward')", name='check_zone_type'),
        CheckConstraint("length(name) >= 1", name='check_zone_name_not_empty'),
        CheckConstraint("serial >= 1", name='check_serial_positive'),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "type": self.zone_type,
            "status": self.status,
            "primary_ns": self.primary_ns,
            "admin_email": self.admin_email,
            "serial": self.serial,
            "refresh_interval": self.refresh_interval,
            "retry_interval": self.retry_interval,
            "expire_interval": self.expire_interval,
            "minimum_ttl": self.minimum_ttl,
            "created_by": self.created_by,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<Zone(id={self.id}, name='{self.name}', type='{self.zone_type}')>"


class DNSRecord(Base):
    """Resource record inside a zone; never hard-deleted by the application"""
    __tablename__ = "dns_records"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    zone_id = Column(String(36), ForeignKey("dns_zones.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    record_type = Column("type", String(10), nullable=False)
    value = Column(Text, nullable=False)
    ttl = Column(Integer, nullable=False, default=300)
    priority = Column(Integer, nullable=True)  # MX, SRV
    weight = Column(Integer, nullable=True)  # SRV
    port = Column(Integer, nullable=True)  # SRV
    status = Column(String(20), nullable=False, default="active")
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    zone = relationship("Zone", back_populates="records")

    __table_args__ = (
        CheckConstraint(
            "type IN ('A', 'AAAA', 'CNAME', 'MX', 'NS', 'PTR', 'SOA', 'SRV', 'TXT', 'CAA')",
            name='check_record_type'
        ),
        CheckConstraint("status IN ('active', 'deleted')", name='check_record_status'),
        CheckConstraint("ttl >= 1 AND ttl <= 2147483647", name='check_ttl_range'),
        CheckConstraint("priority IS NULL OR (priority >= 0 AND priority <= 65535)", name='check_priority_range'),
        CheckConstraint("weight IS NULL OR (weight >= 0 AND weight <= 65535)", name='check_weight_range'),
        CheckConstraint("port IS NULL OR (port >= 1 AND port <= 65535)", name='check_port_range'),
        Index('idx_dns_records_zone_name_type', 'zone_id', 'name', 'type'),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "zone_id": self.zone_id,
            "name": self.name,
            "type": self.record_type,
            "value": self.value,
            "ttl": self.ttl,
            "priority": self.priority,
            "weight": self.weight,
            "port": self.port,
            "status": self.status,
            "created_by": self.created_by,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<DNSRecord(id={self.id}, name='{self.name}', type='{self.record_type}', value='{self.value}')>"

    def __str__(self):
        return f"{self.name} {self.record_type} {self.value}"


class TsigKey(Base):
    """TSIG shared secret used to sign dynamic updates"""
    __tablename__ = "tsig_keys"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    algorithm = Column(String(50), nullable=False, default="hmac-sha256")
    secret = Column(Text, nullable=False)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    last_used = Column(DateTime, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'name', name='uq_tsig_keys_tenant_name'),
        CheckConstraint("usage_count >= 0", name='check_usage_count_non_negative'),
    )

    def to_dict(self) -> dict:
        """Key metadata; the secret is never included"""
        return {
            "id": self.id,
            "name": self.name,
            "algorithm": self.algorithm,
            "created_at": _isoformat(self.created_at),
            "last_used": _isoformat(self.last_used),
            "usage_count": self.usage_count,
        }

    def __repr__(self):
        return f"<TsigKey(id={self.id}, name='{self.name}', algorithm='{self.algorithm}')>"
