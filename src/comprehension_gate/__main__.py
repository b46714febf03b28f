from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Optional

from comprehension_gate.adapters.console import ConsoleGateUI, drive_console_gate
from comprehension_gate.config import ConfigLoader, YamlConfigLoader
from comprehension_gate.config.models import AppConfig, ConfigLoadRequest
from comprehension_gate.core.models import (
    ActionDescriptor,
    EditorialSource,
    EffectiveSource,
    GateVerdict,
    MediaOcrSource,
    NoSource,
    SelfTextSource,
    UrlSource,
)
from comprehension_gate.gate import GateOrchestrator, GateParameterPolicy, SourceResolver
from comprehension_gate.gate.orchestrator import GatedBackend
from comprehension_gate.logging import init_logging
from comprehension_gate.services import BackendClient, MockBackend

logger = logging.getLogger(__name__)

_INTENTS = ("publish", "comment", "share")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="comprehension-gate", description="Comprehension gate runner")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: built-in defaults)",
    )
    parser.add_argument(
        "--no-dotenv",
        action="store_true",
        help="Disable loading .env (env overrides still apply)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to run")

    # Command: policy
    policy_parser = subparsers.add_parser("policy", help="Print the gate requirement for a source kind and text")
    policy_parser.add_argument(
        "--source-kind",
        choices=("none", "url", "editorial", "media-ocr", "self-text"),
        default="none",
    )
    policy_parser.add_argument("--text", default="", help="The user's own text")
    policy_parser.add_argument("--intent", choices=_INTENTS, default="publish")
    policy_parser.add_argument("--platform", default=None, help="Platform of a URL source (e.g. twitter)")
    policy_parser.add_argument("--author", action="store_true", help="Actor authored the quoted content")

    # Command: resolve
    resolve_parser = subparsers.add_parser("resolve", help="Resolve the effective source of an action")
    _add_action_arguments(resolve_parser)

    # Command: run
    run_parser = subparsers.add_parser("run", help="Run the full gate interactively in the terminal")
    _add_action_arguments(run_parser)
    run_parser.add_argument("--intent", choices=_INTENTS, default="publish")
    run_parser.add_argument("--require-source", action="store_true", help="Fail if no source can be resolved")
    run_parser.add_argument("--mock", action="store_true", help="Use the in-memory backend instead of the network")

    return parser


def _add_action_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--text", default="", help="The user's own text")
    parser.add_argument("--url", default=None, help="Direct source URL")
    parser.add_argument("--quoted-id", default=None, help="Id of the quoted post")
    parser.add_argument("--user-id", default="cli-user")


def _sample_source(kind: str, platform: Optional[str]) -> EffectiveSource:
    if kind == "url":
        return UrlSource(url="https://example.com/article", platform=platform)
    if kind == "editorial":
        return EditorialSource(id="sample", title="", body="")
    if kind == "media-ocr":
        return MediaOcrSource(media_id="sample", text="")
    if kind == "self-text":
        return SelfTextSource(text="")
    return NoSource()


def _descriptor_from_args(args: argparse.Namespace, *, dry_run: bool = False) -> ActionDescriptor:
    def _published() -> None:
        if dry_run:
            sys.stdout.write("Dry run: action would be executed.\n")
            return
        sys.stdout.write("Action executed.\n")

    return ActionDescriptor(
        actor_user_id=args.user_id,
        user_text=args.text,
        direct_source_url=args.url,
        quoted_reference_id=args.quoted_id,
        continuation=_published,
    )


def _print_json(payload: object) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, sort_keys=True) + "\n")


async def _load_config(args: argparse.Namespace) -> AppConfig:
    if args.config is None:
        return AppConfig()
    loader: ConfigLoader = YamlConfigLoader()
    request = ConfigLoadRequest(
        yaml_path=args.config,
        dotenv_path=None if args.no_dotenv else ".env",
    )
    return await loader.load(request)


async def _policy(args: argparse.Namespace) -> None:
    config = await _load_config(args)
    init_logging(config.logging)
    requirement = GateParameterPolicy(config.policy).compute(
        _sample_source(args.source_kind, args.platform),
        args.text,
        args.intent,
        is_author=args.author,
    )
    _print_json(dataclasses.asdict(requirement))


async def _resolve(args: argparse.Namespace) -> None:
    config = await _load_config(args)
    init_logging(config.logging)
    async with BackendClient(config.backend) as backend:
        resolver = SourceResolver(previews=backend, references=backend, editorials=backend, settings=config.gate)
        source = await resolver.resolve(_descriptor_from_args(args))
    _print_json(dataclasses.asdict(source))


async def _run_gate(args: argparse.Namespace, config: AppConfig, backend: GatedBackend) -> GateVerdict:
    ui = ConsoleGateUI(sys.stdout)

    def _offer_spontaneous(verdict: GateVerdict) -> None:
        sys.stdout.write("You can still post this as a spontaneous comment, labeled as such.\n")

    orchestrator = GateOrchestrator.from_backend(backend, ui=ui, config=config, degraded_path=_offer_spontaneous)
    controller = await orchestrator.begin(
        _descriptor_from_args(args, dry_run=config.app.dry_run),
        args.intent,
        require_source=args.require_source,
    )
    return await drive_console_gate(controller, out=sys.stdout)


async def _run(args: argparse.Namespace) -> None:
    config = await _load_config(args)
    init_logging(config.logging)
    logger.info("Starting interactive gate. mock=%s dry_run=%s", args.mock, config.app.dry_run)

    if args.mock:
        verdict = await _run_gate(args, config, MockBackend())
    else:
        async with BackendClient(config.backend) as backend:
            verdict = await _run_gate(args, config, backend)
    logger.info("Gate finished. outcome=%s reason=%s", verdict.outcome, verdict.reason)


async def _main_async() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    if args.command == "policy":
        await _policy(args)
    elif args.command == "resolve":
        await _resolve(args)
    elif args.command == "run":
        await _run(args)


def main() -> None:
    try:
        asyncio.run(_main_async())
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")


if __name__ == "__main__":
    main()
