"""
Probe executors: one coroutine per check type, each mapping (target, timeout) to an outcome.

Executors never raise. Every transport or parsing error is turned into a failed
``ProbeOutcome`` whose message ends up in the entity's ``last_check_message``.
"""
import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Awaitable, Callable
from urllib.parse import urlsplit

import httpx

from probewatch.config import get_settings
from probewatch.statuses import (
    CHECK_HTTP_GET,
    CHECK_PING,
    CHECK_SERVICE_HEALTH,
    CHECK_TCP_PORT,
)

logger = logging.getLogger("probewatch.probes")
settings = get_settings()

UP_VALUES = {"up", "ok", "healthy", "pass", "passing", "green", "true", "operational"}


@dataclass(frozen=True)
class ProbeOutcome:
    success: bool
    message: str
    latency_ms: int | None = None


ProbeExecutor = Callable[[str, float, int | None], Awaitable[ProbeOutcome]]


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def parse_host_port(target: str, default_port: int | None = None) -> tuple[str, int | None]:
    """Split ``host``, ``host:port``, ``tcp://host:port`` or a URL into host and port."""
    value = target.strip()
    if "://" in value:
        parsed = urlsplit(value)
        host = parsed.hostname or ""
        port = parsed.port
        if port is None:
            port = {"http": 80, "https": 443}.get(parsed.scheme, default_port)
        return host, port

    value = value.split("/", 1)[0]
    host, sep, port_text = value.rpartition(":")
    if not sep:
        return value, default_port
    return host, int(port_text)


async def probe_ping(target: str, timeout_seconds: float, expected_status: int | None = None) -> ProbeOutcome:
    try:
        host, _ = parse_host_port(target)
    except ValueError:
        return ProbeOutcome(False, f"Invalid ping target: {target}")
    if not host:
        return ProbeOutcome(False, f"Invalid ping target: {target}")

    wait_seconds = max(1, math.ceil(timeout_seconds))
    start = time.monotonic()
    try:
        proc = await asyncio.create_subprocess_exec(
            "ping", "-c", "1", "-W", str(wait_seconds), host,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        return ProbeOutcome(False, "Ping failed: ping command not available")
    except OSError as e:
        return ProbeOutcome(False, f"Ping failed: {str(e)[:200]}")

    try:
        await asyncio.wait_for(proc.communicate(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return ProbeOutcome(False, f"Ping timed out after {timeout_seconds}s", _elapsed_ms(start))

    latency = _elapsed_ms(start)
    if proc.returncode == 0:
        return ProbeOutcome(True, f"Ping successful ({latency}ms)", latency)
    return ProbeOutcome(False, "Host unreachable", latency)


async def probe_tcp_port(target: str, timeout_seconds: float, expected_status: int | None = None) -> ProbeOutcome:
    try:
        host, port = parse_host_port(target, default_port=80)
    except ValueError:
        return ProbeOutcome(False, "Invalid port number")

    start = time.monotonic()
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=timeout_seconds
        )
        writer.close()
        await writer.wait_closed()
    except asyncio.TimeoutError:
        return ProbeOutcome(
            False, f"TCP connection to {host}:{port} timed out after {timeout_seconds}s", _elapsed_ms(start)
        )
    except OSError as e:
        return ProbeOutcome(False, f"TCP connection failed: {str(e)[:200]}", _elapsed_ms(start))

    latency = _elapsed_ms(start)
    return ProbeOutcome(True, f"TCP connection successful ({latency}ms)", latency)


async def probe_http_get(target: str, timeout_seconds: float, expected_status: int | None = None) -> ProbeOutcome:
    expected = expected_status or 200
    start = time.monotonic()
    try:
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(timeout_seconds),
            verify=True,
        ) as client:
            response = await client.get(target)
    except httpx.TimeoutException:
        return ProbeOutcome(False, f"Request timed out after {timeout_seconds}s", _elapsed_ms(start))
    except httpx.ConnectError as e:
        return ProbeOutcome(False, f"Connection failed: {str(e)[:200]}", _elapsed_ms(start))
    except httpx.RequestError as e:
        return ProbeOutcome(False, f"Request error: {str(e)[:200]}", _elapsed_ms(start))
    except Exception as e:
        return ProbeOutcome(False, f"Unexpected error: {str(e)[:200]}", _elapsed_ms(start))

    latency = _elapsed_ms(start)
    if response.status_code == expected:
        return ProbeOutcome(True, f"HTTP {response.status_code} ({latency}ms)", latency)
    return ProbeOutcome(
        False, f"HTTP {response.status_code} (expected {expected})", latency
    )


def is_up_indicator(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in UP_VALUES
    return False


async def probe_service_health(
    target: str, timeout_seconds: float, expected_status: int | None = None
) -> ProbeOutcome:
    start = time.monotonic()
    try:
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(timeout_seconds),
            headers={"Accept": "application/json"},
        ) as client:
            response = await client.get(target)
    except httpx.TimeoutException:
        return ProbeOutcome(False, f"Health check timed out after {timeout_seconds}s", _elapsed_ms(start))
    except httpx.RequestError as e:
        return ProbeOutcome(False, f"Health check failed: {str(e)[:200]}", _elapsed_ms(start))
    except Exception as e:
        return ProbeOutcome(False, f"Unexpected error: {str(e)[:200]}", _elapsed_ms(start))

    latency = _elapsed_ms(start)
    if not 200 <= response.status_code < 300:
        return ProbeOutcome(False, f"HTTP {response.status_code}", latency)

    try:
        payload = response.json()
    except ValueError:
        return ProbeOutcome(False, "Health response is not valid JSON", latency)
    if not isinstance(payload, dict) or "status" not in payload:
        return ProbeOutcome(False, "Health response has no status field", latency)

    indicator = payload["status"]
    if is_up_indicator(indicator):
        return ProbeOutcome(True, f"Health: UP ({latency}ms)", latency)
    return ProbeOutcome(False, f"Health: {indicator}", latency)


PROBES: dict[str, ProbeExecutor] = {
    CHECK_PING: probe_ping,
    CHECK_TCP_PORT: probe_tcp_port,
    CHECK_HTTP_GET: probe_http_get,
    CHECK_SERVICE_HEALTH: probe_service_health,
}


async def run_probe(
    check_type: str,
    target: str | None,
    timeout_seconds: float,
    expected_status: int | None = None,
    grace_seconds: float | None = None,
) -> ProbeOutcome:
    """Run the executor for ``check_type`` with a hard deadline of timeout + grace."""
    executor = PROBES.get(check_type)
    if executor is None:
        return ProbeOutcome(False, f"Unknown check type: {check_type}")
    if not target or not target.strip():
        return ProbeOutcome(False, "No check target configured")

    grace = settings.probe_grace_seconds if grace_seconds is None else grace_seconds
    start = time.monotonic()
    try:
        return await asyncio.wait_for(
            executor(target, timeout_seconds, expected_status),
            timeout=timeout_seconds + grace,
        )
    except asyncio.TimeoutError:
        return ProbeOutcome(False, f"Check abandoned after {timeout_seconds}s timeout", _elapsed_ms(start))
    except Exception as e:
        logger.debug(f"{check_type} probe for {target} raised: {e}")
        return ProbeOutcome(False, f"Check error: {str(e)[:200]}", _elapsed_ms(start))
