#!/usr/bin/env python3
"""Interactive terminal chat against a running memory chat server.

Usage examples:
    # Chat as the default user
    uv run python scripts/chat.py

    # Chat as a specific user against a remote server
    uv run python scripts/chat.py --user alice --url http://localhost:3001

Commands inside the REPL:
    /memories        list stored memories (numbered)
    /search <query>  semantic search over your memories
    /attach <n>...   attach memories by number to the next message
    /cleanup         remove duplicate memories
    /quit            exit
"""

import argparse
import sys
from pathlib import Path

# Allow running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.client import ApiError, MemoryChatClient
from src.memory.models import Memory


def format_memory(index: int, memory: Memory) -> str:
    distance = f" ({memory.distance:.3f})" if memory.distance is not None else ""
    return f"{index:3d}. [{memory.memory_type}] {memory.content}{distance}"


def main() -> None:
    parser = argparse.ArgumentParser(description="Chat with the memory chat server")
    parser.add_argument("--url", default="http://localhost:3001", help="Server base URL")
    parser.add_argument("--user", default="demo-user", help="User id to chat as")
    args = parser.parse_args()

    client = MemoryChatClient(args.url, args.user)
    listed: list[Memory] = []
    attached: list[Memory] = []

    print(f"Chatting as {args.user} (conversation {client.conversation_id}). /quit to exit.")
    try:
        while True:
            try:
                line = input("> ").strip()
            except EOFError:
                break
            if not line:
                continue

            try:
                if line == "/quit":
                    break
                elif line == "/memories":
                    listed = client.list_memories()
                    for i, m in enumerate(listed, 1):
                        print(format_memory(i, m))
                elif line.startswith("/search "):
                    listed = client.search_memories(line.removeprefix("/search ").strip())
                    for i, m in enumerate(listed, 1):
                        print(format_memory(i, m))
                elif line.startswith("/attach "):
                    for token in line.split()[1:]:
                        if token.isdigit() and 0 < int(token) <= len(listed):
                            attached.append(listed[int(token) - 1])
                    print(f"Attached {len(attached)} memories to the next message")
                elif line == "/cleanup":
                    print(f"Removed {client.cleanup()} duplicates")
                else:
                    reply = client.send(line, attached)
                    attached = []
                    print(reply.content)
                    if reply.used_memories:
                        used = ", ".join(m.content for m in reply.used_memories)
                        print(f"  (memories: {used})")
            except ApiError as exc:
                print(f"ERROR: {exc}", file=sys.stderr)
    finally:
        client.close()


if __name__ == "__main__":
    main()
