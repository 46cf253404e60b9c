"""
Shared pytest fixtures for the DDI gateway test suite
"""

from typing import Any, Dict, List, Optional

import pytest

from ddi_gateway.core.config import Settings
from ddi_gateway.core.database import Database
from ddi_gateway.core.exceptions import UpstreamUnavailableException
from ddi_gateway.services.base_service import Actor
from ddi_gateway.services.dns_provider import Available, DNSProvider
from ddi_gateway.services.dns_store import DNSStore
from ddi_gateway.services.event_bus import EventBus
from ddi_gateway.services.record_service import DNSRecordService
from ddi_gateway.services.zone_service import DNSZoneService

TENANT_A = "11111111-1111-1111-1111-111111111111"
TENANT_B = "22222222-2222-2222-2222-222222222222"

SQLITE_DUMP = "PRAGMA foreign_keys=OFF;\nBEGIN TRANSACTION;\nCOMMIT;\n"


class FakeRunner:
    """Command runner that records invocations and answers from a table"""

    def __init__(self, responses: Optional[Dict[str, Dict[str, Any]]] = None):
        self.calls: List[Dict[str, Any]] = []
        self.responses = {
            "sqlite3": {"returncode": 0, "stdout": SQLITE_DUMP, "stderr": ""},
        }
        self.responses.update(responses or {})

    async def __call__(self, command, timeout=30, env=None, input_data=None):
        self.calls.append({"command": list(command), "timeout": timeout, "env": env})
        return self.responses.get(command[0], {"returncode": 0, "stdout": "", "stderr": ""})


class FakeProvider(DNSProvider):
    """In-memory provider; ``fail`` makes every write raise"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.key_name = "ddns-key"
        self.upserts: List[Dict[str, Any]] = []
        self.deletes: List[Dict[str, Any]] = []

    async def get_zones(self):
        return {"zones": []}

    async def get_records(self, zone):
        return {"records": []}

    async def upsert_record(self, zone, record, rrset=None):
        if self.fail:
            raise UpstreamUnavailableException("DNS update timed out after 10.0s")
        self.upserts.append({"zone": zone, "record": record, "rrset": rrset})
        return {"success": True}

    async def delete_record(self, zone, name, record_type):
        if self.fail:
            raise UpstreamUnavailableException("DNS update timed out after 10.0s")
        self.deletes.append({"zone": zone, "name": name, "type": record_type})
        return {"success": True}

    async def get_status(self):
        return {"running": True, "version": "9.18.24", "zones": 0}

    async def get_ddns_status(self):
        return {"d2_running": True, "bind_running": True, "key_name": self.key_name}


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "DATABASE_URL": f"sqlite:///{tmp_path / 'gateway.db'}",
        "BACKUP_DIR": str(tmp_path / "backups"),
        "BACKUP_COMPRESSION": False,
        "BACKUP_SCHEDULE_ENABLED": False,
        "BIND_CONFIG_FILES": [str(tmp_path / "named.conf")],
        "MONITORING_ENABLED": False,
        "DNS_PROVIDER_ENABLED": False,
        "DNS_NAMED_CONF_LOCAL": str(tmp_path / "named.conf.local"),
        "DNS_TSIG_KEY_FILE": str(tmp_path / "ddns.key"),
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings(tmp_path):
    (tmp_path / "named.conf").write_text('include "/etc/bind/named.conf.local";\n')
    return make_settings(tmp_path)


@pytest.fixture
async def database(settings):
    db = Database(settings=settings)
    await db.create_all()
    yield db
    await db.close()


@pytest.fixture
def store(database):
    return DNSStore(database)


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def actor():
    return Actor(user_id="admin", source_ip="10.0.0.5", user_agent="pytest")


@pytest.fixture
def zone_service(store, events):
    return DNSZoneService(store, events)


@pytest.fixture
def record_service(store, provider, events):
    return DNSRecordService(store, Available(provider), events)


@pytest.fixture
async def example_zone(store):
    return await store.create_zone(TENANT_A, {"name": "example.com", "primary_ns": "ns1.example.com"})
