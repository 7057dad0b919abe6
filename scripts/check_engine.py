#!/usr/bin/env python3
"""Check that the workflow engine (and optionally the proxy) is reachable.

Runs the same HEAD probe the service uses, optionally fires a webhook with
a test payload, and checks the Agent Hub proxy health route.

Usage:
    cd ~/projects/agent-hub
    python scripts/check_engine.py [--engine-url URL] [--webhook PATH] [--proxy-origin URL]

Exits with status 1 when the engine is down.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import httpx

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import Settings
from src.executor.errors import ExecutionBaseError, get_user_friendly_message, parse_error
from src.transport.webhook_client import PROXY_HEALTH_PATH, WebhookClient


async def check(engine_url: str, webhook: Optional[str], payload: dict, proxy_origin: Optional[str]) -> bool:
    async with WebhookClient(engine_url, use_proxy=False) as client:
        print(f"Probing engine at {engine_url} ...")
        available = await client.check_availability()
        print(f"  Engine reachable: {'yes' if available else 'NO'}")

        if available and webhook:
            print(f"\nTriggering webhook {client.resolve_url(webhook)} ...")
            try:
                response = await client.trigger(webhook, payload)
            except ExecutionBaseError as e:
                parsed = parse_error(e)
                print(f"  {parsed.code}: {parsed.message}")
                print(f"  ({get_user_friendly_message(parsed)})")
            else:
                print(f"  status:      {response.status or '-'}")
                print(f"  executionId: {response.execution_id or '-'}")
                print(f"  has data:    {response.has_data}")
                if response.message:
                    print(f"  message:     {response.message}")

    if proxy_origin:
        url = f"{proxy_origin.rstrip('/')}{PROXY_HEALTH_PATH}"
        print(f"\nChecking proxy health at {url} ...")
        try:
            resp = httpx.get(url, timeout=10)
            print(f"  {resp.status_code}: {resp.text}")
        except httpx.HTTPError as e:
            print(f"  Proxy not reachable: {e}")

    return available


if __name__ == "__main__":
    import argparse

    settings = Settings.from_env()

    parser = argparse.ArgumentParser(description="Check workflow engine connectivity")
    parser.add_argument(
        "--engine-url",
        default=settings.engine_base_url,
        help=f"Engine base URL (default: {settings.engine_base_url})",
    )
    parser.add_argument(
        "--webhook",
        help="Webhook path to trigger, e.g. veo3-video-generate",
    )
    parser.add_argument(
        "--payload",
        default='{"prompt": "connectivity check"}',
        help="JSON payload for --webhook",
    )
    parser.add_argument(
        "--proxy-origin",
        help="Agent Hub origin whose /proxy/health should be checked, e.g. http://localhost:8001",
    )
    args = parser.parse_args()

    try:
        payload = json.loads(args.payload)
    except json.JSONDecodeError as e:
        print(f"Error: --payload is not valid JSON: {e}")
        sys.exit(2)

    ok = asyncio.run(check(args.engine_url, args.webhook, payload, args.proxy_origin))
    sys.exit(0 if ok else 1)
