"""CLI adapter: streams one chat turn to stdout as tokens arrive."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from agentic_engine import create_runtime
from agentic_engine.engine.models import Agent, ChatTurnRequest, LlmConfig, Prompt
from agentic_engine.tools.interceptor import ToolInvocationRecorder


async def run_cli(text: str, *, provider: str, model: str, base_url: str, system: str | None) -> int:
    runtime = create_runtime()
    agent = Agent(
        id="cli",
        name="cli",
        llm=LlmConfig(
            provider=provider,
            model=model,
            base_url=base_url,
            api_key=os.environ.get("OPENAI_API_KEY"),
        ),
    )
    request = ChatTurnRequest(
        agent=agent,
        prompt=Prompt(content=system) if system else None,
        message=text,
        session_id="cli-default",
    )

    recorder = ToolInvocationRecorder()
    async for token in runtime.orchestrator.stream_turn(request, recorder=recorder):
        print(token, end="", flush=True)
    print()
    for record in recorder.records:
        print(f"[tool] {record.tool_name} success={record.success}", file=sys.stderr)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(prog="agentic-chat", description="Stream one chat turn.")
    parser.add_argument("text", nargs="*", help="message text (read from stdin when omitted)")
    parser.add_argument("--provider", default=os.environ.get("AGENTIC_PROVIDER", "openai"))
    parser.add_argument("--model", default=os.environ.get("OPENAI_MODEL", "gpt-4o-mini"))
    parser.add_argument("--base-url", default=os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1"))
    parser.add_argument("--system", default=None, help="system prompt")
    args = parser.parse_args()

    logging.basicConfig(level=os.environ.get("AGENTIC_LOG_LEVEL", "WARNING").upper())

    text = " ".join(args.text) if args.text else sys.stdin.read().strip()
    if not text:
        parser.print_usage(sys.stderr)
        sys.exit(1)

    sys.exit(asyncio.run(run_cli(
        text, provider=args.provider, model=args.model, base_url=args.base_url, system=args.system,
    )))


if __name__ == "__main__":
    main()
