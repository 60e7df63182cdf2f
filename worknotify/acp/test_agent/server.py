"""ACP test agent (stdio transport).

Behaviour switches let integration tests provoke timeouts, RPC errors,
crashes and stray output without a real AI agent installed.
"""

import argparse
import asyncio
import json
import sys
import uuid
from pathlib import Path
from typing import Any

AGENT_NAME = "worknotify-test-agent"


def make_response(request_id: int | str | None, result: Any) -> dict[str, Any]:
    """Create a JSON-RPC success response."""
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def make_error(request_id: int | str | None, code: int, message: str) -> dict[str, Any]:
    """Create a JSON-RPC error response."""
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "error": {"code": code, "message": message},
    }


def write_message(message: dict[str, Any]) -> None:
    print(json.dumps(message, separators=(",", ":")), flush=True)


def record(path: Path | None, message: Any) -> None:
    """Append a received message to the record file (one JSON line each)."""
    if path is None:
        return
    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(message) + "\n")


class StubAgent:
    """Handles one agent connection according to its command-line switches."""

    def __init__(self, args: argparse.Namespace) -> None:
        self.hang = set(args.hang or [])
        self.error = set(args.error or [])
        self.exit_on = set(args.exit_on or [])
        self.noise = args.noise
        self.ask_permission = args.ask_permission
        self.record_path = Path(args.record) if args.record else None

    def handle(self, message: dict[str, Any]) -> None:
        method = message.get("method", "")
        request_id = message.get("id")
        params = message.get("params") or {}

        # Notifications (session/cancel) and replies to our own requests
        if request_id is None or not method:
            return

        if method in self.exit_on:
            sys.exit(3)
        if method in self.hang:
            return
        if method in self.error:
            write_message(make_error(request_id, -32000, f"Test agent refused {method}"))
            return

        if method == "initialize":
            write_message(
                make_response(
                    request_id,
                    {
                        "protocolVersion": params.get("protocolVersion", 1),
                        "agentCapabilities": {"loadSession": False},
                        "agentInfo": {"name": AGENT_NAME, "version": "0.1.0"},
                    },
                )
            )
        elif method == "session/new":
            write_message(make_response(request_id, {"sessionId": f"sess-{uuid.uuid4().hex[:12]}"}))
        elif method == "session/prompt":
            self._prompt(request_id, params)
        else:
            write_message(make_error(request_id, -32601, f"Method not found: {method}"))

    def _prompt(self, request_id: int | str, params: dict[str, Any]) -> None:
        session_id = params.get("sessionId")
        prompt = params.get("prompt") or []
        text = "".join(block.get("text", "") for block in prompt if isinstance(block, dict))

        if self.noise:
            print("Thinking about the work items...", flush=True)
            print("INFO service=agent prompt received", file=sys.stderr, flush=True)
        if self.ask_permission:
            write_message(
                {
                    "jsonrpc": "2.0",
                    "id": "perm-1",
                    "method": "session/request_permission",
                    "params": {"sessionId": session_id},
                }
            )

        write_message(
            {
                "jsonrpc": "2.0",
                "method": "session/update",
                "params": {
                    "sessionId": session_id,
                    "update": {
                        "sessionUpdate": "agent_message_chunk",
                        "content": {"type": "text", "text": f"Received {len(text)} characters"},
                    },
                },
            }
        )
        write_message(make_response(request_id, {"stopReason": "end_turn"}))


async def run_agent(agent: StubAgent) -> None:
    """Main loop - read from stdin, write to stdout."""
    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            break
        if not line.strip():
            continue

        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            write_message(make_error(None, -32700, "Parse error"))
            continue

        record(agent.record_path, message)
        if isinstance(message, dict):
            agent.handle(message)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="python -m worknotify.acp.test_agent")
    parser.add_argument("--hang", action="append", metavar="METHOD", help="Never answer METHOD")
    parser.add_argument("--error", action="append", metavar="METHOD", help="Answer METHOD with an error")
    parser.add_argument("--exit-on", action="append", metavar="METHOD", help="Exit when METHOD arrives")
    parser.add_argument("--noise", action="store_true", help="Print non-JSON output while prompting")
    parser.add_argument(
        "--ask-permission",
        action="store_true",
        help="Send session/request_permission to the client while prompting",
    )
    parser.add_argument("--record", metavar="PATH", help="Append every received message to PATH")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Entry point."""
    asyncio.run(run_agent(StubAgent(parse_args(argv))))


if __name__ == "__main__":
    main()
