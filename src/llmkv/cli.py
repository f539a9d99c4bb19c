"""Command-line entry point for llmkv."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import TextIO

from prompt_toolkit import prompt as pt_prompt

from .config import GatewayConfig, load_config_file
from .constants import APP_NAME, DEFAULT_USER_ID
from .domain.chat import REASONING_EFFORTS, ChatMessage, ChatRequest, Source
from .domain.compare import CompareOptions
from .domain.events import ErrorEvent, SourcesEvent, TextDelta, ThinkingDelta
from .gateway import Gateway, describe_error
from .logging import (
    build_run_log_path,
    log_event,
    redact_secrets,
    sanitize_error_message,
    setup_logging,
)
from .vault.envelope import generate_encryption_key

__all__ = ["build_parser", "main"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="llmkv - encrypted LLM key vault and provider gateway",
    )
    parser.add_argument("-c", "--config", help="Path to JSON configuration file")
    parser.add_argument(
        "-l", "--log", help="Log file path, or a directory to create a run log in"
    )
    parser.add_argument(
        "--user", default=DEFAULT_USER_ID, help=f"User id (default: {DEFAULT_USER_ID})"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    set_key = sub.add_parser("set-key", help="Store an API key for a provider")
    set_key.add_argument("provider")
    set_key.add_argument("key", nargs="?", help="API key (prompted when omitted)")

    delete_key = sub.add_parser("delete-key", help="Delete a stored API key")
    delete_key.add_argument("provider")

    sub.add_parser("list-keys", help="List stored keys (hints only)")
    sub.add_parser("gen-key", help="Print a new base64 encryption key")

    chat = sub.add_parser("chat", help="Send one prompt to one provider/model")
    chat.add_argument("provider")
    chat.add_argument("model")
    chat.add_argument("prompt", nargs="+")
    chat.add_argument("--system", help="System prompt")
    chat.add_argument("--no-stream", action="store_true", help="Wait for the full response")
    chat.add_argument("--search", action="store_true", help="Enable provider web search")
    chat.add_argument("--reasoning", choices=REASONING_EFFORTS, help="Reasoning effort")
    chat.add_argument("--max-tokens", type=int, help="Maximum output tokens")
    chat.add_argument("--temperature", type=float, help="Sampling temperature")

    compare = sub.add_parser("compare", help="Send one prompt to several targets at once")
    compare.add_argument("prompt", nargs="+")
    compare.add_argument(
        "-t",
        "--target",
        action="append",
        required=True,
        dest="targets",
        metavar="PROVIDER:MODEL",
        help="Compare target (repeatable)",
    )
    compare.add_argument("--system", help="System prompt")
    compare.add_argument("--max-tokens", type=int, help="Maximum output tokens")
    compare.add_argument("--temperature", type=float, help="Sampling temperature")

    return parser


def _resolve_log_path(value: str | None) -> str | None:
    if not value:
        return None
    path = Path(value).expanduser()
    if path.is_dir():
        return build_run_log_path(str(path))
    return str(path)


def load_config(config_path: str | None) -> GatewayConfig:
    """File settings (if any) overlaid with ``LLMKV_*`` environment variables."""
    base = load_config_file(config_path) if config_path else None
    return GatewayConfig.from_env(base=base)


def _print_sources(sources: list[Source], out: TextIO) -> None:
    if not sources:
        return
    print("\nSources:", file=out)
    for number, source in enumerate(sources, start=1):
        print(f"  [{number}] {source.title} - {source.url}", file=out)


async def _set_key(gateway: Gateway, user_id: str, provider: str, key: str, out: TextIO) -> int:
    gateway.adapter_for(provider)
    record = await gateway.vault.save(user_id, provider, key)
    print(f"Saved {provider} key {record.hint}", file=out)
    return 0


async def _delete_key(gateway: Gateway, user_id: str, provider: str, out: TextIO) -> int:
    if await gateway.vault.delete(user_id, provider):
        print(f"Deleted {provider} key", file=out)
        return 0
    print(f"No {provider} key stored", file=out)
    return 1


async def _list_keys(gateway: Gateway, user_id: str, out: TextIO) -> int:
    records = await gateway.vault.list_records(user_id)
    if not records:
        print("No keys stored", file=out)
        return 0
    for record in records:
        print(f"{record.provider:<12} {record.hint:<10} updated {record.updated_at}", file=out)
    return 0


async def _chat(gateway: Gateway, user_id: str, args: argparse.Namespace, out: TextIO) -> int:
    messages: list[ChatMessage] = []
    if args.system:
        messages.append(ChatMessage.system(args.system))
    messages.append(ChatMessage.user(" ".join(args.prompt)))
    request = ChatRequest(
        provider=args.provider,
        model=args.model,
        messages=tuple(messages),
        temperature=args.temperature,
        max_output_tokens=args.max_tokens,
        reasoning_effort=args.reasoning,
        web_search=args.search,
    )

    if args.no_stream:
        response = await gateway.send(user_id, request)
        print(response.text, file=out)
        _print_sources(response.sources, out)
        return 0

    relay = await gateway.open_stream(user_id, request, drain_on_disconnect=False)
    sources: list[Source] = []
    failed = False
    in_thinking = False
    async for event in relay.events():
        if isinstance(event, ThinkingDelta):
            if not in_thinking:
                print("[thinking] ", end="", file=out)
                in_thinking = True
            print(event.delta, end="", file=out, flush=True)
        elif isinstance(event, TextDelta):
            if in_thinking:
                print("\n", file=out)
                in_thinking = False
            print(event.delta, end="", file=out, flush=True)
        elif isinstance(event, SourcesEvent):
            sources = list(event.sources)
        elif isinstance(event, ErrorEvent):
            print(f"\nError: {event.message}", file=sys.stderr)
            failed = True
    await relay.wait_closed()
    print(file=out)
    _print_sources(sources, out)
    return 1 if failed else 0


async def _compare(gateway: Gateway, user_id: str, args: argparse.Namespace, out: TextIO) -> int:
    options = CompareOptions(
        temperature=args.temperature,
        max_output_tokens=args.max_tokens,
        system_prompt=args.system,
    )
    results = await gateway.compare(user_id, " ".join(args.prompt), args.targets, options)
    for index, result in enumerate(results):
        if index:
            print(file=out)
        print(f"=== {result.provider}:{result.model} ===", file=out)
        if result.ok and result.response is not None:
            print(result.response.text, file=out)
            _print_sources(result.response.sources, out)
        else:
            print(f"Error: {result.error}", file=out)
    return 0 if any(r.ok for r in results) else 1


async def run_command(args: argparse.Namespace, config: GatewayConfig, out: TextIO) -> int:
    gateway = Gateway.from_config(config)
    if args.command == "set-key":
        key = args.key or await asyncio.to_thread(
            pt_prompt, f"{args.provider} API key: ", is_password=True
        )
        return await _set_key(gateway, args.user, args.provider, key.strip(), out)
    if args.command == "delete-key":
        return await _delete_key(gateway, args.user, args.provider, out)
    if args.command == "list-keys":
        return await _list_keys(gateway, args.user, out)
    if args.command == "chat":
        return await _chat(gateway, args.user, args, out)
    if args.command == "compare":
        return await _compare(gateway, args.user, args, out)
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the llmkv CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    app_started = time.perf_counter()

    if args.command == "gen-key":
        print(generate_encryption_key())
        sys.exit(0)

    secrets = [getattr(args, "key", None) or ""]
    try:
        log_path = _resolve_log_path(args.log)
        setup_logging(log_path)
        config = load_config(args.config)
        log_event(
            "app_start",
            level=logging.INFO,
            command=args.command,
            store=config.store,
            config_file=args.config,
            log_file=log_path,
        )

        exit_code = asyncio.run(run_command(args, config, sys.stdout))
        log_event(
            "app_stop",
            level=logging.INFO,
            reason="normal",
            uptime_ms=round((time.perf_counter() - app_started) * 1000, 1),
        )
    except KeyboardInterrupt:
        log_event(
            "app_stop",
            level=logging.INFO,
            reason="keyboard_interrupt",
            uptime_ms=round((time.perf_counter() - app_started) * 1000, 1),
        )
        print("\nInterrupted")
        sys.exit(0)
    except Exception as e:
        shape = describe_error(e)
        message = shape.message
        if shape.code == "internal_error":
            message = sanitize_error_message(str(e)) or message
        message = redact_secrets(message, secrets)
        print(f"Error: {message}")
        log_event(
            "app_stop",
            level=logging.ERROR,
            reason="fatal_error",
            error_type=type(e).__name__,
            error=message,
            uptime_ms=round((time.perf_counter() - app_started) * 1000, 1),
        )
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
