"""CLI JSON-lines adapter — reads a goal from argv/stdin, prints AgentEvents as JSON."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys

from agent_chain import create_executor


async def run_cli(goal: str) -> None:
    executor = create_executor()
    async for event in executor.run(goal):
        print(json.dumps(event.model_dump(mode="json"), default=str), flush=True)


def main() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "WARNING").upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if len(sys.argv) > 1:
        goal = " ".join(sys.argv[1:])
    else:
        raw = sys.stdin.read().strip()
        if not raw:
            print("Usage: agent-cli <goal>  OR  echo '{\"goal\":\"...\"}' | agent-cli", file=sys.stderr)
            sys.exit(1)
        try:
            data = json.loads(raw)
            goal = data.get("goal", raw) if isinstance(data, dict) else raw
        except json.JSONDecodeError:
            goal = raw

    asyncio.run(run_cli(goal))


if __name__ == "__main__":
    main()
