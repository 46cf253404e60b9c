"""
Tests for the record write path: validation, store, nameserver sync and audit
"""

import json

import pytest

from conftest import TENANT_A, FakeProvider
from ddi_gateway.core.exceptions import NotFoundException, TransactionFailureException, ValidationException
from ddi_gateway.services.dns_provider import Available, Unavailable
from ddi_gateway.services.record_service import DNSRecordService


async def test_create_record_syncs_and_audits(record_service, provider, store, actor, example_zone):
    result = await record_service.create_record(
        TENANT_A, "example.com", {"name": "www", "type": "a", "value": "192.168.1.10"}, actor
    )

    assert result["record"]["type"] == "A"
    assert result["record"]["ttl"] == 300
    assert result["warnings"] == ["IPv4 address in private range (RFC 1918)"]
    assert result["dns_sync"] == {"status": "synced"}

    upsert = provider.upserts[-1]
    assert upsert["zone"] == "example.com"
    assert [m["value"] for m in upsert["rrset"]] == ["192.168.1.10"]

    audit = await store.get_audit_logs(TENANT_A, operation="CREATE_RECORD")
    assert len(audit) == 1
    assert audit[0].success is True
    assert audit[0].resource_id == "example.com/www/A"
    assert audit[0].user_id == "admin"
    assert audit[0].source_ip == "10.0.0.5"


async def test_second_value_publishes_whole_rrset(record_service, provider, actor, example_zone):
    await record_service.create_record(TENANT_A, "example.com", {"name": "www", "type": "A", "value": "203.0.113.1"}, actor)
    await record_service.create_record(TENANT_A, "example.com", {"name": "www", "type": "A", "value": "203.0.113.2"}, actor)

    assert sorted(m["value"] for m in provider.upserts[-1]["rrset"]) == ["203.0.113.1", "203.0.113.2"]


async def test_invalid_record_is_rejected_and_audited(record_service, provider, store, actor, example_zone):
    with pytest.raises(ValidationException) as exc_info:
        await record_service.create_record(
            TENANT_A, "example.com", {"name": "www", "type": "A", "value": "999.1.1.1"}, actor
        )

    assert "Invalid octet 999 at position 1 (must be 0-255)" in exc_info.value.errors
    assert await store.count_records(TENANT_A) == 0
    assert provider.upserts == []

    audit = await store.get_audit_logs(TENANT_A, operation="CREATE_RECORD")
    assert audit[0].success is False
    assert audit[0].error_message == "Record validation failed"


async def test_provider_failure_does_not_undo_the_write(store, events, actor, example_zone):
    service = DNSRecordService(store, Available(FakeProvider(fail=True)), events)

    result = await service.create_record(
        TENANT_A, "example.com", {"name": "www", "type": "A", "value": "203.0.113.1"}, actor
    )

    assert result["dns_sync"]["status"] == "failed"
    assert "timed out" in result["dns_sync"]["message"]
    assert await store.count_records(TENANT_A) == 1

    audit = await store.get_audit_logs(TENANT_A, operation="CREATE_RECORD")
    assert audit[0].success is True
    assert audit[0].details["dns_sync"]["status"] == "failed"


async def test_unavailable_provider_skips_sync(store, events, actor, example_zone):
    service = DNSRecordService(store, Unavailable("DNS provider disabled"), events)

    result = await service.create_record(
        TENANT_A, "example.com", {"name": "www", "type": "A", "value": "203.0.113.1"}, actor
    )

    assert result["dns_sync"] == {"status": "skipped", "message": "DNS provider disabled"}
    assert await store.count_records(TENANT_A) == 1


async def test_create_in_unknown_zone(record_service, store, actor):
    with pytest.raises(NotFoundException):
        await record_service.create_record(
            TENANT_A, "missing.com", {"name": "www", "type": "A", "value": "203.0.113.1"}, actor
        )
    audit = await store.get_audit_logs(TENANT_A)
    assert audit[0].success is False


async def test_update_record_revalidates_merged_record(record_service, provider, actor, example_zone):
    await record_service.create_record(
        TENANT_A, "example.com", {"name": "@", "type": "MX", "value": "mail.example.com", "priority": 10}, actor
    )

    result = await record_service.update_record(TENANT_A, "example.com", "@", "mx", {"priority": 20}, actor)
    assert result["records"][0]["priority"] == 20
    assert result["dns_sync"] == {"status": "synced"}
    assert provider.upserts[-1]["rrset"][0]["priority"] == 20

    with pytest.raises(ValidationException):
        await record_service.update_record(TENANT_A, "example.com", "@", "MX", {"priority": 70000}, actor)


async def test_update_missing_record(record_service, actor, example_zone):
    with pytest.raises(NotFoundException):
        await record_service.update_record(TENANT_A, "example.com", "nope", "A", {"ttl": 60}, actor)


async def test_deleting_last_member_removes_rrset(record_service, provider, actor, example_zone):
    await record_service.create_record(TENANT_A, "example.com", {"name": "www", "type": "A", "value": "203.0.113.1"}, actor)
    await record_service.create_record(TENANT_A, "example.com", {"name": "www", "type": "A", "value": "203.0.113.2"}, actor)

    result = await record_service.delete_record(
        TENANT_A, "example.com", "www", "A", actor, match_value="203.0.113.1"
    )
    assert result["deleted"] == 1
    assert [m["value"] for m in provider.upserts[-1]["rrset"]] == ["203.0.113.2"]

    await record_service.delete_record(TENANT_A, "example.com", "www", "A", actor)
    assert provider.deletes[-1] == {"zone": "example.com", "name": "www", "type": "A"}


async def test_bulk_create_validates_everything_first(record_service, store, provider, actor, example_zone):
    records = [
        {"name": "one", "type": "A", "value": "203.0.113.1"},
        {"name": "two", "type": "A", "value": "not-an-ip"},
    ]
    with pytest.raises(TransactionFailureException) as exc_info:
        await record_service.bulk_create_records(TENANT_A, "example.com", records, actor)

    assert exc_info.value.errors[0]["index"] == 1
    assert await store.count_records(TENANT_A) == 0
    assert provider.upserts == []


async def test_bulk_create_and_delete(record_service, store, provider, actor, example_zone):
    records = [{"name": f"host{i}", "type": "A", "value": f"203.0.113.{i}"} for i in range(1, 4)]
    created = await record_service.bulk_create_records(TENANT_A, "example.com", records, actor)
    assert created["created"] == 3
    assert created["dns_sync"] == {"status": "synced", "rrsets": 3}

    deleted = await record_service.bulk_delete_records(
        TENANT_A, "example.com", [{"name": "host1", "type": "A"}, {"name": "host2", "type": "A"}], actor
    )
    assert deleted["deleted"] == 2
    assert await store.count_records(TENANT_A) == 1
    assert len(provider.deletes) == 2


async def test_import_zone_file(record_service, store, actor, example_zone):
    content = """$TTL 3600
@    IN SOA ns1.example.com. admin.example.com. 2024010101 3600 1800 604800 300
@    IN NS  ns1.example.com.
www  IN A   203.0.113.20
@    IN MX  10 mail.example.com.
"""
    result = await record_service.import_zone_file(TENANT_A, "example.com", content, actor)

    assert result["imported"] == 3
    assert result["skipped"] == 1
    types = sorted(r.record_type for r in await store.get_records(TENANT_A, "example.com"))
    assert types == ["A", "MX", "NS"]


async def test_import_with_parse_errors_writes_nothing(record_service, store, actor, example_zone):
    content = "www IN A 203.0.113.20\nbad IN HINFO x86 linux\n"
    with pytest.raises(ValidationException) as exc_info:
        await record_service.import_zone_file(TENANT_A, "example.com", content, actor)

    assert exc_info.value.errors == ["Line 2: Unsupported record type: HINFO"]
    assert await store.count_records(TENANT_A) == 0


async def test_export_formats(record_service, actor, example_zone):
    await record_service.create_record(
        TENANT_A, "example.com", {"name": "www", "type": "A", "value": "203.0.113.20"}, actor
    )

    bind = await record_service.export_zone(TENANT_A, "example.com", "bind")
    assert bind["filename"] == "example.com.zone"
    assert bind["content"].startswith("; Zone file for example.com")
    assert "203.0.113.20" in bind["content"]

    exported = await record_service.export_zone(TENANT_A, "example.com", "json")
    payload = json.loads(exported["content"])
    assert payload["zone"]["name"] == "example.com"
    assert payload["recordCount"] == 1

    with pytest.raises(ValidationException):
        await record_service.export_zone(TENANT_A, "example.com", "csv")


async def test_record_events_are_emitted(record_service, events, actor, example_zone):
    received = []
    events.subscribe("record_*", lambda event, payload: received.append(event))

    await record_service.create_record(
        TENANT_A, "example.com", {"name": "www", "type": "A", "value": "203.0.113.20"}, actor
    )
    await events.drain()

    assert received == ["record_created"]


async def test_synced_write_counts_key_usage(record_service, store, events, actor, example_zone):
    await store.create_tsig_key(TENANT_A, "ddns-key")

    await record_service.create_record(
        TENANT_A, "example.com", {"name": "www", "type": "A", "value": "203.0.113.30"}, actor
    )
    key = (await store.get_tsig_keys(TENANT_A))[0]
    assert key["usage_count"] == 1
    assert key["last_used"] is not None

    failing = DNSRecordService(store, Available(FakeProvider(fail=True)), events)
    await failing.create_record(
        TENANT_A, "example.com", {"name": "mail", "type": "A", "value": "203.0.113.31"}, actor
    )
    assert (await store.get_tsig_keys(TENANT_A))[0]["usage_count"] == 1


async def test_unmanaged_key_does_not_fail_sync(record_service, actor, example_zone):
    result = await record_service.create_record(
        TENANT_A, "example.com", {"name": "www", "type": "A", "value": "203.0.113.32"}, actor
    )
    assert result["dns_sync"] == {"status": "synced"}
