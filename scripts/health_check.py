import asyncio
import json
import os
import sys
import time
from datetime import datetime, timezone
from typing import Optional

import httpx

BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:8000")
FRONTEND_URL = os.getenv("FRONTEND_URL")
TIMEOUT_SECONDS = 5.0


async def probe(client: httpx.AsyncClient, url: str, parse_json: bool = False) -> dict:
    result = {"status": "unknown", "response_time_ms": 0}
    start = time.perf_counter()
    try:
        response = await client.get(url)
        result["response_time_ms"] = round((time.perf_counter() - start) * 1000, 1)
        result["status"] = "healthy" if response.status_code == 200 else "unhealthy"
        if parse_json:
            result["data"] = response.json()
    except (httpx.HTTPError, ValueError) as e:
        result["status"] = "unhealthy"
        result["error"] = str(e)
    return result


async def check_health(backend_url: str, frontend_url: Optional[str] = None) -> dict:
    """
    Probe the backend /health endpoint and, when configured, the frontend URL.
    """
    results = {"timestamp": datetime.now(timezone.utc).isoformat()}
    async with httpx.AsyncClient(timeout=TIMEOUT_SECONDS) as client:
        results["backend"] = await probe(client, f"{backend_url.rstrip('/')}/health", parse_json=True)
        if frontend_url:
            results["frontend"] = await probe(client, frontend_url)
    return results


def is_healthy(results: dict) -> bool:
    return all(
        value["status"] == "healthy"
        for key, value in results.items()
        if key != "timestamp"
    )


if __name__ == "__main__":
    report = asyncio.run(check_health(BACKEND_URL, FRONTEND_URL))
    print(json.dumps(report, indent=2))
    sys.exit(0 if is_healthy(report) else 1)
