"""CLI entry point for zchat.

Headless access to the same adapters and driver a UI would use.

Entry point:
    zchat models [--provider lmstudio|openrouter] [--json]
    zchat check
    zchat usage [--json]
    zchat chat --provider <p> --model <id> [--system <prompt>] [--no-stream] PROMPT
"""

import argparse
import asyncio
import json
import logging
import sys
import uuid
from typing import Optional

from pydantic import ValidationError

from zchat.adapters import GenerationOptions, LMStudioAdapter, OpenRouterAdapter
from zchat.config import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    DEFAULT_TIMEOUT_SECONDS,
    Conversation,
    Provider,
    UserSettings,
)
from zchat.core import ProviderRequestError
from zchat.driver import ConversationConfigError, ConversationDriver, InMemoryTurnStore
from zchat.settings import EnvSettingsStore

logger = logging.getLogger(__name__)

PROVIDER_CHOICES = [p.value for p in Provider]


# ─────────────────────────────────────────────────────────────────────
# ARGUMENT PARSING
# ─────────────────────────────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zchat",
        description="Chat with local (LM Studio) and cloud (OpenRouter) models.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    sub = parser.add_subparsers(dest="command")

    # models
    models_p = sub.add_parser("models", help="List available models")
    models_p.add_argument(
        "--provider", choices=PROVIDER_CHOICES, default=None,
        help="Only list this provider's catalog (default: both)",
    )
    models_p.add_argument(
        "--json", action="store_true", dest="json_output",
        help="Full JSON output (pricing, context length)",
    )

    # check
    sub.add_parser("check", help="Report provider availability and configuration")

    # usage
    usage_p = sub.add_parser("usage", help="Show OpenRouter key usage")
    usage_p.add_argument("--json", action="store_true", dest="json_output")

    # chat
    chat_p = sub.add_parser("chat", help="Send one prompt and stream the reply")
    chat_p.add_argument("prompt", help="User message")
    chat_p.add_argument("--provider", choices=PROVIDER_CHOICES, default=None)
    chat_p.add_argument("--model", default=None, help="Model ID (default: ZCHAT_DEFAULT_MODEL)")
    chat_p.add_argument("--system", default=None, help="System prompt")
    chat_p.add_argument("--temperature", type=float, default=DEFAULT_TEMPERATURE)
    chat_p.add_argument("--max-tokens", type=int, default=DEFAULT_MAX_TOKENS)
    chat_p.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT_SECONDS,
                        help="Timeout per network wait (seconds)")
    chat_p.add_argument("--no-stream", action="store_true", help="Single non-streaming request")

    return parser


def _build_adapters(settings: UserSettings) -> dict:
    return {
        Provider.LMSTUDIO: LMStudioAdapter(settings.lmstudio_url),
        Provider.OPENROUTER: OpenRouterAdapter(
            settings.openrouter_url,
            api_key=settings.openrouter_api_key or None,
            settings_store=EnvSettingsStore(),
        ),
    }


# ─────────────────────────────────────────────────────────────────────
# COMMANDS
# ─────────────────────────────────────────────────────────────────────


async def _cmd_models(adapters: dict, provider: Optional[str], json_output: bool = False) -> int:
    """List available models. Returns exit code."""
    selected = [Provider(provider)] if provider else list(adapters)
    catalog = {}
    for name in selected:
        catalog[name.value] = await adapters[name].list_models()

    if json_output:
        json.dump(
            {name: [m.model_dump() for m in models] for name, models in catalog.items()},
            sys.stdout, indent=2,
        )
        sys.stdout.write("\n")
        return 0

    for name, models in catalog.items():
        if not models:
            print(f"{name}: no models available", file=sys.stderr)
        for model in models:
            print(f"{name}\t{model.id}")
    return 0


async def _cmd_check(adapters: dict) -> int:
    local = await adapters[Provider.LMSTUDIO].is_ready()
    cloud = await adapters[Provider.OPENROUTER].is_ready()
    print(f"lmstudio:   {'available' if local else 'unavailable'}")
    print(f"openrouter: {'configured' if cloud else 'not configured'}")
    return 0 if (local or cloud) else 1


async def _cmd_usage(adapters: dict, json_output: bool = False) -> int:
    usage = await adapters[Provider.OPENROUTER].get_usage()
    if usage is None:
        print("Usage unavailable (no API key or request failed)", file=sys.stderr)
        return 1
    if json_output:
        json.dump(usage.model_dump(), sys.stdout, indent=2)
        sys.stdout.write("\n")
    else:
        limit = "unlimited" if usage.limit is None else usage.limit
        print(f"label: {usage.label}")
        print(f"usage: {usage.usage} / {limit}")
    return 0


async def _cmd_chat(
    adapters: dict,
    settings: UserSettings,
    prompt: str,
    provider: Optional[str],
    model: Optional[str],
    system: Optional[str],
    options: GenerationOptions,
) -> int:
    conversation = Conversation(
        id=str(uuid.uuid4()),
        title=prompt[:40],
        provider=provider or settings.default_provider,
        model=model or settings.default_model,
        system_prompt=system,
    )
    driver = ConversationDriver(adapters, InMemoryTurnStore(), settings)

    try:
        if not await driver.is_ready(conversation):
            print(f"Provider '{conversation.provider}' is not ready", file=sys.stderr)
            return 1
        async for chunk in driver.stream_reply(conversation, prompt, options):
            sys.stdout.write(chunk)
            sys.stdout.flush()
    except ConversationConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except ProviderRequestError as e:
        print(f"\nError: {e}", file=sys.stderr)
        return 1

    sys.stdout.write("\n")
    usage = await driver.context_usage(conversation)
    logger.info("Context usage: %s", usage)
    return 0


# ─────────────────────────────────────────────────────────────────────
# ENTRY POINT
# ─────────────────────────────────────────────────────────────────────


def main():
    parser = _build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Logging
    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(name)s %(message)s", stream=sys.stderr)

    # Load env
    from dotenv import load_dotenv
    load_dotenv()

    try:
        settings = UserSettings.from_env()
    except ValidationError as e:
        print(f"Error: invalid settings in environment:\n{e}", file=sys.stderr)
        sys.exit(2)
    adapters = _build_adapters(settings)

    # Dispatch
    if args.command == "models":
        code = asyncio.run(_cmd_models(adapters, args.provider, json_output=args.json_output))
    elif args.command == "check":
        code = asyncio.run(_cmd_check(adapters))
    elif args.command == "usage":
        code = asyncio.run(_cmd_usage(adapters, json_output=args.json_output))
    elif args.command == "chat":
        try:
            options = GenerationOptions(
                temperature=args.temperature,
                max_tokens=args.max_tokens,
                timeout_seconds=args.timeout,
                stream=not args.no_stream,
            )
        except ValidationError as e:
            print(f"Error: invalid generation options:\n{e}", file=sys.stderr)
            sys.exit(2)
        code = asyncio.run(_cmd_chat(
            adapters,
            settings,
            prompt=args.prompt,
            provider=args.provider,
            model=args.model,
            system=args.system,
            options=options,
        ))
    else:
        parser.print_help()
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
