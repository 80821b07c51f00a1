"""
Tests for the Health Prober.

============================================================
PURPOSE
============================================================
Probes run against a local aiohttp server exposing one route per
endpoint behaviour:
1. Healthy endpoint: up, height and latency present
2. No URL: down, no request made
3. Timeout: 408, other probes unaffected
4. Non-2xx, malformed JSON, RPC error, bad height
5. Transport failure: 500
6. Input order preserved, one result per target

============================================================
"""

import asyncio
from unittest.mock import patch

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from rpc_health.models import ProbeError, ProbeTarget
from rpc_health.prober import (
    LIVENESS_PAYLOAD,
    TIMEOUT_STATUS_CODE,
    TRANSPORT_ERROR_STATUS_CODE,
    HealthProber,
    parse_block_height,
)


# ============================================================
# FIXTURES
# ============================================================

@pytest_asyncio.fixture
async def rpc_server():
    """Local JSON-RPC server; every received body is kept in server.requests."""
    requests = []

    async def record(request):
        requests.append((request.path, await request.json()))

    async def healthy(request):
        await record(request)
        return web.json_response({"jsonrpc": "2.0", "id": 1, "result": "0x1a2b"})

    async def slow(request):
        await record(request)
        await asyncio.sleep(0.6)
        return web.json_response({"jsonrpc": "2.0", "id": 1, "result": "0x1"})

    async def unavailable(request):
        await record(request)
        return web.Response(status=503, text="maintenance")

    async def not_json(request):
        await record(request)
        return web.Response(status=200, text="<html>hello</html>")

    async def rpc_error(request):
        await record(request)
        return web.json_response(
            {"jsonrpc": "2.0", "id": 1, "error": {"code": -32601, "message": "method not found"}}
        )

    async def bad_height(request):
        await record(request)
        return web.json_response({"jsonrpc": "2.0", "id": 1, "result": "not-hex"})

    app = web.Application()
    app.router.add_post("/healthy", healthy)
    app.router.add_post("/slow", slow)
    app.router.add_post("/unavailable", unavailable)
    app.router.add_post("/not-json", not_json)
    app.router.add_post("/rpc-error", rpc_error)
    app.router.add_post("/bad-height", bad_height)
    server = TestServer(app)
    server.requests = requests
    await server.start_server()
    yield server
    await server.close()


def target(server, validator_id, path):
    url = str(server.make_url(path)) if path else None
    return ProbeTarget(validator_id=validator_id, address=f"0x{validator_id:040x}", rpc_url=url)


# ============================================================
# PARSING
# ============================================================

class TestParseBlockHeight:
    """Tests for parse_block_height."""

    def test_hex_result(self):
        assert parse_block_height({"result": "0x10"}) == 16

    def test_zero_height(self):
        assert parse_block_height({"result": "0x0"}) == 0

    def test_error_body(self):
        assert parse_block_height({"error": {"code": 1}, "result": "0x10"}) is None

    def test_missing_result(self):
        assert parse_block_height({"jsonrpc": "2.0"}) is None

    def test_non_string_result(self):
        assert parse_block_height({"result": 16}) is None

    def test_non_dict_body(self):
        assert parse_block_height(["0x10"]) is None

    def test_garbage_result(self):
        assert parse_block_height({"result": "0xzz"}) is None


# ============================================================
# PROBING
# ============================================================

class TestHealthProber:
    """Tests for HealthProber against a live local server."""

    @pytest.mark.asyncio
    async def test_healthy_endpoint(self, rpc_server):
        prober = HealthProber(timeout=2.0)

        [result] = await prober.probe([target(rpc_server, 1, "/healthy")])

        assert result.up is True
        assert result.block_number == 0x1A2B
        assert result.status_code == 200
        assert result.response_time_ms is not None and result.response_time_ms >= 0
        assert result.error is None

    @pytest.mark.asyncio
    async def test_sends_block_number_request(self, rpc_server):
        await HealthProber(timeout=2.0).probe([target(rpc_server, 1, "/healthy")])

        [(path, body)] = rpc_server.requests
        assert path == "/healthy"
        assert body == LIVENESS_PAYLOAD

    @pytest.mark.asyncio
    async def test_no_url_makes_no_request(self, rpc_server):
        [result] = await HealthProber(timeout=2.0).probe([target(rpc_server, 1, None)])

        assert result.up is False
        assert result.error == ProbeError.NO_ENDPOINT
        assert result.status_code is None
        assert result.block_number is None
        assert result.response_time_ms is None
        assert rpc_server.requests == []

    @pytest.mark.asyncio
    async def test_timeout_does_not_affect_others(self, rpc_server):
        targets = [
            target(rpc_server, 1, "/healthy"),
            target(rpc_server, 2, "/slow"),
            target(rpc_server, 3, "/healthy"),
        ]

        results = await HealthProber(timeout=0.1).probe(targets)

        assert [r.validator_id for r in results] == [1, 2, 3]
        assert results[0].up and results[2].up
        assert results[1].up is False
        assert results[1].status_code == TIMEOUT_STATUS_CODE
        assert results[1].error == ProbeError.TIMEOUT
        assert results[1].response_time_ms is None

    @pytest.mark.asyncio
    async def test_non_2xx_keeps_status(self, rpc_server):
        [result] = await HealthProber(timeout=2.0).probe([target(rpc_server, 1, "/unavailable")])

        assert result.up is False
        assert result.status_code == 503
        assert result.error == ProbeError.HTTP_STATUS

    @pytest.mark.asyncio
    async def test_malformed_body(self, rpc_server):
        [result] = await HealthProber(timeout=2.0).probe([target(rpc_server, 1, "/not-json")])

        assert result.up is False
        assert result.error == ProbeError.MALFORMED_RESPONSE
        assert result.status_code == 200

    @pytest.mark.asyncio
    async def test_rpc_error_body(self, rpc_server):
        [result] = await HealthProber(timeout=2.0).probe([target(rpc_server, 1, "/rpc-error")])

        assert result.up is False
        assert result.error == ProbeError.RPC_ERROR
        assert "method not found" in result.detail

    @pytest.mark.asyncio
    async def test_invalid_height(self, rpc_server):
        [result] = await HealthProber(timeout=2.0).probe([target(rpc_server, 1, "/bad-height")])

        assert result.up is False
        assert result.error == ProbeError.INVALID_HEIGHT
        assert result.block_number is None

    @pytest.mark.asyncio
    async def test_connection_refused_is_transport_error(self, rpc_server):
        unreachable = ProbeTarget(validator_id=9, address="0x9", rpc_url="http://127.0.0.1:1/")

        [result] = await HealthProber(timeout=2.0).probe([unreachable])

        assert result.up is False
        assert result.error == ProbeError.TRANSPORT
        assert result.status_code == TRANSPORT_ERROR_STATUS_CODE

    @pytest.mark.asyncio
    async def test_mixed_targets_one_result_each(self, rpc_server):
        paths = ["/healthy", None, "/unavailable", "/rpc-error", "/healthy"]
        targets = [target(rpc_server, i, p) for i, p in enumerate(paths, start=1)]

        results = await HealthProber(timeout=2.0, max_concurrency=2).probe(targets)

        assert [r.validator_id for r in results] == [1, 2, 3, 4, 5]
        assert [r.up for r in results] == [True, False, False, False, True]
        assert len(rpc_server.requests) == 4

    @pytest.mark.asyncio
    async def test_crashed_probe_reported_as_internal(self, rpc_server):
        prober = HealthProber(timeout=2.0)
        real_probe_one = prober.probe_one

        async def crash_on_second(session, t):
            if t.validator_id == 2:
                raise RuntimeError("bug")
            return await real_probe_one(session, t)

        with patch.object(prober, "probe_one", side_effect=crash_on_second):
            results = await prober.probe(
                [target(rpc_server, 1, "/healthy"), target(rpc_server, 2, "/healthy")]
            )

        assert results[0].up is True
        assert results[1].error == ProbeError.INTERNAL
        assert results[1].status_code == TRANSPORT_ERROR_STATUS_CODE

    @pytest.mark.asyncio
    async def test_empty_target_list(self):
        assert await HealthProber().probe([]) == []

    def test_rejects_invalid_settings(self):
        with pytest.raises(ValueError):
            HealthProber(timeout=0)
        with pytest.raises(ValueError):
            HealthProber(max_concurrency=0)
