"""CLI JSON-lines adapter — reads a query from argv/stdin, prints ChatEvents as JSON."""

from __future__ import annotations

import asyncio
import json
import sys

from advisor_router import create_runtime
from advisor_router.engine.config import Preferences
from advisor_router.engine.models import ChatEventType, ChatRequest


async def run_cli(query: str, web_search: bool = True) -> int:
    runtime = create_runtime()
    try:
        # One probe cycle so the active backend reflects real health.
        snapshot = await runtime.monitor.tick()
        print(json.dumps({
            "type": "health",
            "active_backend": runtime.controller.active_backend.value,
            "local": snapshot.local.status.value,
            "remote": snapshot.remote.status.value,
            "proxy": snapshot.proxy.status.value,
            "search": snapshot.search.status.value,
        }), flush=True)

        exit_code = 0
        request = ChatRequest(query=query, web_search=web_search)
        async for event in runtime.orchestrator.handle(request):
            print(json.dumps(event.model_dump(mode="json"), default=str), flush=True)
            if event.type is ChatEventType.ERROR:
                exit_code = 2
        return exit_code
    finally:
        await runtime.stop()


def main() -> None:
    Preferences.from_env().configure_logging(stream=sys.stderr)
    web_search = True
    if len(sys.argv) > 1:
        query = " ".join(sys.argv[1:])
    else:
        raw = sys.stdin.read().strip()
        if not raw:
            print("Usage: advisor-cli <query>  OR  echo '{\"query\":\"...\"}' | advisor-cli", file=sys.stderr)
            sys.exit(1)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            data = raw
        if isinstance(data, dict):
            query = str(data.get("query", raw))
            web_search = bool(data.get("web_search", True))
        else:
            query = raw

    sys.exit(asyncio.run(run_cli(query, web_search=web_search)))


if __name__ == "__main__":
    main()
