"""
Tests for the tenant-scoped relational store
"""

from datetime import datetime

import pytest
from sqlalchemy import select

from conftest import TENANT_A, TENANT_B
from ddi_gateway.core.exceptions import (
    ConflictException, NotFoundException, TransactionFailureException, ValidationException
)
from ddi_gateway.models.dns import DNSRecord
from ddi_gateway.services.dns_store import next_serial


def a_record(name, value="192.168.1.10", **extra):
    return {"name": name, "type": "A", "value": value, "ttl": 300, **extra}


def test_next_serial_moves_to_date_serial():
    now = datetime(2024, 3, 15)
    assert next_serial(1, now) == 2024031500
    assert next_serial(2024031500, now) == 2024031501
    # A serial already ahead of today's date keeps incrementing
    assert next_serial(2099010100, now) == 2099010101


async def test_create_zone_applies_defaults(store):
    zone = await store.create_zone(TENANT_A, {"name": "Example.COM."})
    assert zone.name == "example.com"
    assert zone.zone_type == "master"
    assert zone.refresh_interval == 3600
    assert zone.retry_interval == 1800
    assert zone.expire_interval == 604800
    assert zone.minimum_ttl == 300
    assert zone.serial >= int(datetime.utcnow().strftime("%Y%m%d")) * 100


async def test_duplicate_zone_conflicts_within_tenant_only(store):
    await store.create_zone(TENANT_A, {"name": "example.com"})
    with pytest.raises(ConflictException):
        await store.create_zone(TENANT_A, {"name": "example.com"})

    other = await store.create_zone(TENANT_B, {"name": "example.com"})
    assert other.tenant_id == TENANT_B


async def test_tenants_do_not_see_each_other(store, example_zone):
    await store.create_record(TENANT_A, "example.com", a_record("www"))

    assert await store.get_zone(TENANT_B, "example.com") is None
    assert await store.get_zones(TENANT_B) == []
    assert await store.get_records(TENANT_B, "example.com") == []
    assert await store.count_records(TENANT_B) == 0
    with pytest.raises(NotFoundException):
        await store.create_record(TENANT_B, "example.com", a_record("api"))


async def test_update_zone_bumps_serial(store, example_zone):
    updated = await store.update_zone(TENANT_A, "example.com", {"minimum_ttl": 600})
    assert updated.minimum_ttl == 600
    assert updated.serial > example_zone.serial

    with pytest.raises(ValidationException):
        await store.update_zone(TENANT_A, "example.com", {"name": "ignored.com"})


async def test_record_write_bumps_zone_serial(store, example_zone):
    await store.create_record(TENANT_A, "example.com", a_record("www"))
    zone = await store.get_zone(TENANT_A, "example.com")
    assert zone.serial == example_zone.serial + 1


async def test_multi_value_rrset_and_match_value(store, example_zone):
    await store.create_record(TENANT_A, "example.com", a_record("www", "192.168.1.10"))
    await store.create_record(TENANT_A, "example.com", a_record("www", "192.168.1.11"))

    assert len(await store.get_record(TENANT_A, "example.com", "www", "A")) == 2

    updated = await store.update_record(
        TENANT_A, "example.com", "www", "a", {"ttl": 600}, match_value="192.168.1.11"
    )
    assert [r.value for r in updated] == ["192.168.1.11"]

    rrset = await store.get_records(TENANT_A, "example.com", record_type="A", name="www")
    assert sorted((r.value, r.ttl) for r in rrset) == [("192.168.1.10", 300), ("192.168.1.11", 600)]


async def test_update_missing_record(store, example_zone):
    with pytest.raises(NotFoundException):
        await store.update_record(TENANT_A, "example.com", "nope", "A", {"ttl": 60})


async def test_soft_delete_keeps_the_row(store, database, example_zone):
    await store.create_record(TENANT_A, "example.com", a_record("www"))
    deleted = await store.delete_record(TENANT_A, "example.com", "www", "A")
    assert [r.status for r in deleted] == ["deleted"]
    assert await store.get_records(TENANT_A, "example.com") == []

    async with database.transaction(TENANT_A) as session:
        rows = (await session.execute(select(DNSRecord))).scalars().all()
    assert [(r.name, r.status) for r in rows] == [("www", "deleted")]

    # The name is free again once the old record is deleted
    await store.create_record(
        TENANT_A, "example.com", {"name": "www", "type": "CNAME", "value": "web.example.com", "ttl": 300}
    )


async def test_cname_exclusivity(store, example_zone):
    await store.create_record(TENANT_A, "example.com", a_record("www"))
    with pytest.raises(ConflictException):
        await store.create_record(
            TENANT_A, "example.com", {"name": "www", "type": "CNAME", "value": "web.example.com", "ttl": 300}
        )

    await store.create_record(
        TENANT_A, "example.com", {"name": "alias", "type": "CNAME", "value": "web.example.com", "ttl": 300}
    )
    with pytest.raises(ConflictException):
        await store.create_record(TENANT_A, "example.com", a_record("alias"))
    with pytest.raises(ConflictException):
        await store.create_record(
            TENANT_A, "example.com", {"name": "alias", "type": "CNAME", "value": "other.example.com", "ttl": 300}
        )


async def test_bulk_create_is_all_or_nothing(store, example_zone):
    await store.create_record(
        TENANT_A, "example.com", {"name": "alias", "type": "CNAME", "value": "web.example.com", "ttl": 300}
    )
    batch = [a_record("one"), a_record("two"), a_record("alias")]

    with pytest.raises(TransactionFailureException) as exc_info:
        await store.bulk_create_records(TENANT_A, "example.com", batch)

    assert [e["index"] for e in exc_info.value.errors] == [2]
    names = {r.name for r in await store.get_records(TENANT_A, "example.com")}
    assert names == {"alias"}


async def test_bulk_create_success(store, example_zone):
    created = await store.bulk_create_records(TENANT_A, "example.com", [a_record(f"host{i}") for i in range(5)])
    assert len(created) == 5
    assert await store.count_records(TENANT_A, "example.com") == 5


async def test_bulk_limit(store, example_zone):
    with pytest.raises(ValidationException):
        await store.bulk_create_records(TENANT_A, "example.com", [a_record(f"h{i}") for i in range(101)])


async def test_bulk_delete_rolls_back_on_missing_key(store, example_zone):
    await store.create_record(TENANT_A, "example.com", a_record("one"))
    await store.create_record(TENANT_A, "example.com", a_record("two"))

    with pytest.raises(TransactionFailureException):
        await store.bulk_delete_records(
            TENANT_A, "example.com", [{"name": "one", "type": "A"}, {"name": "missing", "type": "A"}]
        )
    assert await store.count_records(TENANT_A, "example.com") == 2

    deleted = await store.bulk_delete_records(
        TENANT_A, "example.com", [{"name": "one", "type": "A"}, {"name": "two", "type": "A"}]
    )
    assert len(deleted) == 2
    assert await store.count_records(TENANT_A, "example.com") == 0


async def test_delete_zone_removes_records(store, example_zone):
    await store.create_record(TENANT_A, "example.com", a_record("www"))
    await store.delete_zone(TENANT_A, "example.com")
    assert await store.get_zone(TENANT_A, "example.com") is None
    assert await store.count_records(TENANT_A) == 0


async def test_tsig_keys(store):
    key = await store.create_tsig_key(TENANT_A, "ddns-key")
    assert key.algorithm == "hmac-sha256"
    assert len(key.secret) == 44

    listed = await store.get_tsig_keys(TENANT_A)
    assert [k["name"] for k in listed] == ["ddns-key"]
    assert "secret" not in listed[0]
    assert await store.get_tsig_keys(TENANT_B) == []

    with pytest.raises(ConflictException):
        await store.create_tsig_key(TENANT_A, "ddns-key")
    with pytest.raises(ValidationException):
        await store.create_tsig_key(TENANT_A, "bad-alg", algorithm="rsa")
    with pytest.raises(ValidationException):
        await store.create_tsig_key(TENANT_A, "bad-secret", secret="not base64!")

    await store.record_tsig_usage(TENANT_A, "ddns-key")
    assert (await store.get_tsig_keys(TENANT_A))[0]["usage_count"] == 1

    await store.delete_tsig_key(TENANT_A, "ddns-key")
    with pytest.raises(NotFoundException):
        await store.record_tsig_usage(TENANT_A, "ddns-key")


async def test_audit_log_filters(store):
    await store.create_audit_log(TENANT_A, "CREATE_ZONE", "zone", "example.com", user_id="alice")
    await store.create_audit_log(
        TENANT_A, "DELETE_ZONE", "zone", "example.com", user_id="bob", success=False, error_message="boom"
    )
    await store.create_audit_log(TENANT_B, "CREATE_ZONE", "zone", "other.com")

    entries = await store.get_audit_logs(TENANT_A)
    assert {e.operation for e in entries} == {"CREATE_ZONE", "DELETE_ZONE"}
    assert [e.user_id for e in await store.get_audit_logs(TENANT_A, user_id="bob")] == ["bob"]
    failed = await store.get_audit_logs(TENANT_A, operation="DELETE_ZONE")
    assert failed[0].success is False
    assert failed[0].error_message == "boom"
