"""
Tests for the Kea control agent client against a local aiohttp server
"""

import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from conftest import make_settings
from ddi_gateway.core.exceptions import KeaCommandError, UpstreamUnavailableException
from ddi_gateway.services.kea_client import KeaClient


def kea_app(reply, status=200, delay=0.0, seen=None):
    async def handler(request):
        if seen is not None:
            seen.append({"body": await request.json(), "auth": request.headers.get("Authorization")})
        if delay:
            await asyncio.sleep(delay)
        return web.json_response(reply, status=status)

    app = web.Application()
    app.router.add_post("/", handler)
    return app


async def test_successful_command_sends_envelope(tmp_path):
    seen = []
    reply = [{"result": 0, "text": "2 IPv4 lease(s) found.", "arguments": {"leases": []}}]
    async with TestServer(kea_app(reply, seen=seen)) as server:
        client = KeaClient(make_settings(
            tmp_path, KEA_CA_URL=str(server.make_url("/")), KEA_CA_USER="kea", KEA_CA_PASSWORD="secret"
        ))
        result = await client.call("lease4-get-all", arguments={"subnets": [1]})

    assert result == reply
    assert seen[0]["body"] == {"command": "lease4-get-all", "service": ["dhcp4"], "arguments": {"subnets": [1]}}
    assert seen[0]["auth"] == "Basic a2VhOnNlY3JldA=="


async def test_empty_result_counts_as_success(tmp_path):
    reply = [{"result": 3, "text": "0 IPv4 lease(s) found."}]
    async with TestServer(kea_app(reply)) as server:
        client = KeaClient(make_settings(tmp_path, KEA_CA_URL=str(server.make_url("/"))))
        assert await client.call("lease4-get-all") == reply


async def test_error_result_raises(tmp_path):
    reply = [{"result": 1, "text": "unable to forward command to the dhcp6 service"}]
    async with TestServer(kea_app(reply)) as server:
        client = KeaClient(make_settings(tmp_path, KEA_CA_URL=str(server.make_url("/"))))
        with pytest.raises(KeaCommandError) as exc_info:
            await client.call("config-get", service=["dhcp6"])

    assert exc_info.value.result == 1
    assert exc_info.value.text == "unable to forward command to the dhcp6 service"
    assert exc_info.value.status_code == 502


async def test_http_error_is_upstream_unavailable(tmp_path):
    async with TestServer(kea_app({"error": "boom"}, status=500)) as server:
        client = KeaClient(make_settings(tmp_path, KEA_CA_URL=str(server.make_url("/"))))
        with pytest.raises(UpstreamUnavailableException):
            await client.call("status-get")


async def test_timeout_is_upstream_unavailable(tmp_path):
    async with TestServer(kea_app([{"result": 0}], delay=1.0)) as server:
        client = KeaClient(make_settings(tmp_path, KEA_CA_URL=str(server.make_url("/")), KEA_RPC_TIMEOUT=0.1))
        with pytest.raises(UpstreamUnavailableException) as exc_info:
            await client.call("status-get")

    assert "timed out" in exc_info.value.message


async def test_malformed_reply(tmp_path):
    async with TestServer(kea_app([])) as server:
        client = KeaClient(make_settings(tmp_path, KEA_CA_URL=str(server.make_url("/"))))
        with pytest.raises(UpstreamUnavailableException):
            await client.call("status-get")


async def test_connection_refused(tmp_path):
    client = KeaClient(make_settings(tmp_path, KEA_CA_URL="http://127.0.0.1:1/"))
    with pytest.raises(UpstreamUnavailableException):
        await client.call("status-get")
