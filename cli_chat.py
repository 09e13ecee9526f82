"""Terminal client that runs chat turns and searches in-process."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Iterable, Optional

from dotenv import load_dotenv

from smart_catalog.config import load_settings
from smart_catalog.services import Services, build_services

GREEN = "\033[92m"
DIM = "\033[2m"
RESET = "\033[0m"


def ask(services: Services, conversation_id: Optional[str], message: str) -> str:
    result = services.orchestrator.handle_message(conversation_id, message)
    meta = result.metadata
    print(result.content)
    print(
        f"{DIM}[{meta['query_type']} | products: {meta['product_count']} | "
        f"{meta['duration_ms']} ms | conversation {result.conversation_id}]{RESET}"
    )
    return result.conversation_id


def search(services: Services, query: str, limit: int) -> None:
    candidates = services.retriever.retrieve(query, limit=limit)
    print(f"Query: {query} | results: {len(candidates)}")
    for idx, candidate in enumerate(candidates, start=1):
        item = candidate.item
        print(
            f"  {idx:02d}. score={candidate.score:.2f} | {candidate.provenance.value} | "
            f"{item.brand_name or '-'} | {item.name} | {item.formatted_price or 'N/A'}"
        )


def interactive_shell(services: Services, conversation_id: Optional[str]) -> None:
    print(f"{GREEN}Catalog assistant.{RESET} Type 'exit' to quit, 'new' to start over.")
    while True:
        try:
            message = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return
        if not message:
            continue
        if message.lower() in {"exit", "quit"}:
            return
        if message.lower() == "new":
            conversation_id = None
            continue
        conversation_id = ask(services, conversation_id, message)


def embed_catalog(services: Services) -> int:
    updated = services.store.backfill_embeddings(services.provider.embed, save=True)
    print(f"Embedded {updated} products into {services.settings.catalog_path}")
    return 0


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="CLI client for the catalog assistant")
    parser.add_argument("message", nargs="?", help="Question to ask. If omitted, starts REPL mode.")
    parser.add_argument("--conversation", help="Continue an existing conversation id")
    parser.add_argument("--search", action="store_true", help="Run hybrid retrieval only, without chat")
    parser.add_argument("--limit", type=int, default=20, help="Result limit for --search")
    parser.add_argument("--embed-catalog", action="store_true", help="Compute missing product embeddings and save")
    parser.add_argument("--env-file", type=Path, default=Path(".env"), help="Optional .env file to load")
    args = parser.parse_args(list(argv) if argv is not None else None)
    if args.search and not args.message:
        parser.error("--search needs a query")

    if args.env_file.exists():
        load_dotenv(args.env_file)
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    services = build_services(settings)

    if args.embed_catalog:
        return embed_catalog(services)
    if args.message and args.search:
        search(services, args.message, args.limit)
        return 0
    if args.message:
        ask(services, args.conversation, args.message)
        return 0
    interactive_shell(services, args.conversation)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
