"""HTTP utilities for relaysite.

Bounded JSON reading for aiohttp responses so a misbehaving scheduler API
cannot exhaust memory.

See Also:
    [SchedulerClient][relaysite.services.scheduler.SchedulerClient]:
        Reads every API response through
        [read_bounded_json][relaysite.utils.http.read_bounded_json].
"""

from __future__ import annotations

import json
from typing import Any

import aiohttp


async def read_bounded(response: aiohttp.ClientResponse, max_size: int) -> bytes:
    """Read an entire response body with size enforcement.

    Accumulates chunks until EOF, which also handles chunked transfer
    encoding where one read may return fewer bytes than available.

    Raises:
        ValueError: If the body exceeds *max_size* bytes.
    """
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await response.content.read(max_size + 1 - total)
        if not chunk:
            break
        total += len(chunk)
        if total > max_size:
            raise ValueError(f"Response body too large: >{max_size} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


async def read_bounded_json(response: aiohttp.ClientResponse, max_size: int) -> Any:
    """Read and parse a JSON body, enforcing *max_size* before parsing.

    Returns:
        The parsed value, or ``None`` for an empty body.

    Raises:
        ValueError: If the body exceeds *max_size*.
        json.JSONDecodeError: If the body is not valid JSON.
    """
    body = await read_bounded(response, max_size)
    if not body.strip():
        return None
    return json.loads(body)
