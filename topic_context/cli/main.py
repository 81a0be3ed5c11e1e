"""CLI: topic-context init, presets, config validate, route, context, compact, topics."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

import yaml

from ..config import load_config, validate_config
from ..presets import get_preset, list_presets


def _get_engine(args):
    from ..engine import TopicContextEngine

    return TopicContextEngine(config_path=args.config)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_init(args):
    """Generate a config file from a preset."""
    preset = get_preset(args.preset)
    if preset is None:
        available = ", ".join(p.name for p in list_presets())
        print(f"Unknown preset: {args.preset}", file=sys.stderr)
        if available:
            print(f"Available presets: {available}", file=sys.stderr)
        sys.exit(1)

    output = Path.cwd() / "topic-context.yaml"
    if output.exists() and not args.force:
        print(f"Config file already exists: {output}", file=sys.stderr)
        print("Use --force to overwrite.", file=sys.stderr)
        sys.exit(1)

    output.write_text(preset.template)
    print(f"Created {output}")
    print(f"Preset: {preset.name}: {preset.description}")
    print()
    print("Next steps:")
    print("  1. Export the API key named by api_key_env in the providers section")
    print("  2. Validate config:   topic-context config validate")
    print("  3. Try a route:       topic-context route -c <conversation> -m 'hello' --no-llm")


def cmd_presets(args):
    """List or show presets."""
    action = getattr(args, "presets_action", None) or "list"

    if action == "list":
        presets = list_presets()
        if not presets:
            print("No presets registered.")
            return
        print(f"{'Name':<15} {'Description'}")
        print("-" * 60)
        for p in presets:
            print(f"{p.name:<15} {p.description}")

    elif action == "show":
        preset = get_preset(args.preset_name)
        if preset is None:
            available = ", ".join(p.name for p in list_presets())
            print(f"Unknown preset: {args.preset_name}", file=sys.stderr)
            if available:
                print(f"Available: {available}", file=sys.stderr)
            sys.exit(1)
        print(yaml.safe_dump(preset.config_dict, sort_keys=False))


def cmd_config_validate(args):
    """Validate config file."""
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    errors = validate_config(config)
    if errors:
        print("Config validation errors:")
        for err in errors:
            print(f"  - {err}")
        sys.exit(1)
    else:
        chain = [config.llm.provider] + config.llm.fallbacks
        print("Config is valid.")
        print(f"  LLM providers: {' -> '.join(chain)}")
        print(f"  Router model: {config.router.model} (enabled={config.router.enabled})")
        print(f"  Context budget: {config.assembler.max_context_tokens:,}")
        print(f"  Storage: {config.storage.sqlite_path}")


def cmd_route(args):
    """Classify a message and print the routing decision."""
    engine = _get_engine(args)
    try:
        router_input = engine.gather_router_input(
            args.conversation,
            args.message,
            active_topic_id=args.active_topic,
            model_preference=args.model,
        )
        decision = engine.route(router_input, allow_llm=not args.no_llm)
        _print_json(decision.to_dict())
    finally:
        engine.close()


def cmd_context(args):
    """Assemble and print the context for a conversation."""
    from ..types import RouterDecision, TopicAction

    engine = _get_engine(args)
    try:
        topic_ids = args.topic or []
        decision = RouterDecision(
            topic_action=TopicAction.CONTINUE_ACTIVE if topic_ids else TopicAction.NEW,
            primary_topic_id=topic_ids[0] if topic_ids else None,
        )
        result = engine.build_context(
            args.conversation,
            decision,
            manual_topic_ids=topic_ids or None,
            max_context_tokens=args.budget,
        )
        _print_json({
            "source": result.source,
            "includedTopicIds": result.included_topic_ids,
            "includedMessageIds": result.included_message_ids,
            "summaryCount": result.summary_count,
            "artifactCount": result.artifact_count,
            "debug": asdict(result.debug) if result.debug else None,
            "messages": [asdict(m) for m in result.messages],
        })
    finally:
        engine.close()


def cmd_compact(args):
    """Summarize a topic's new messages into a summary layer."""
    engine = _get_engine(args)
    try:
        output = engine.compact_topic(args.topic_id, apply=args.apply)
        if output is None:
            print("No compaction performed.")
            return
        print(output.new_summary_layer)
        print()
        print(f"Token range: {output.token_range.start:,}-{output.token_range.end:,}")
        if args.apply:
            print(f"Applied to topic {args.topic_id}")
    finally:
        engine.close()


def cmd_topics(args):
    """List topics of a conversation."""
    engine = _get_engine(args)
    try:
        topics = engine.store.list_conversation_topics(args.conversation)
        if not topics:
            print("No topics found.")
            return
        print(f"{'ID':<20} {'Tokens':>8} {'Compacted':<10} {'Label'}")
        print("-" * 60)
        for t in topics:
            tokens = f"{t.token_estimate:,}" if t.token_estimate is not None else "-"
            print(f"{t.id:<20} {tokens:>8} {'yes' if t.is_compacted else 'no':<10} {t.label}")
    finally:
        engine.close()


def main():
    parser = argparse.ArgumentParser(
        prog="topic-context",
        description="Topic-aware routing and context assembly for multi-topic chats",
    )
    parser.add_argument("--config", help="Path to config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")

    # init
    init_parser = subparsers.add_parser("init", help="Generate config from a preset")
    init_parser.add_argument("preset", nargs="?", default="default", help="Preset name (e.g. 'local')")
    init_parser.add_argument("--force", action="store_true", help="Overwrite existing config")

    # presets
    presets_parser = subparsers.add_parser("presets", help="List or inspect config presets")
    presets_sub = presets_parser.add_subparsers(dest="presets_action")
    presets_sub.add_parser("list", help="List all available presets")
    presets_show_parser = presets_sub.add_parser("show", help="Show a preset's config as YAML")
    presets_show_parser.add_argument("preset_name", help="Preset name to show")

    # config validate
    config_parser = subparsers.add_parser("config", help="Config operations")
    config_sub = config_parser.add_subparsers(dest="config_command")
    config_sub.add_parser("validate", help="Validate config file")

    # route
    route_parser = subparsers.add_parser("route", help="Classify a message into a topic decision")
    route_parser.add_argument("--conversation", "-c", required=True, help="Conversation id")
    route_parser.add_argument("--message", "-m", required=True, help="Inbound user message")
    route_parser.add_argument("--active-topic", help="Currently active topic id")
    route_parser.add_argument("--model", default="auto", help="Model preference (default: auto)")
    route_parser.add_argument("--no-llm", action="store_true", help="Use the deterministic fallback policy")

    # context
    context_parser = subparsers.add_parser("context", help="Assemble the context for a conversation")
    context_parser.add_argument("--conversation", "-c", required=True, help="Conversation id")
    context_parser.add_argument(
        "--topic", "-t", action="append",
        help="Topic id to load (repeatable; first is primary)",
    )
    context_parser.add_argument("--budget", type=int, help="Token budget override")

    # compact
    compact_parser = subparsers.add_parser("compact", help="Summarize a topic's new messages")
    compact_parser.add_argument("topic_id", help="Topic id")
    compact_parser.add_argument("--apply", action="store_true", help="Persist the new summary layer")

    # topics
    topics_parser = subparsers.add_parser("topics", help="List topics of a conversation")
    topics_parser.add_argument("--conversation", "-c", required=True, help="Conversation id")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "init":
        cmd_init(args)
    elif args.command == "presets":
        cmd_presets(args)
    elif args.command == "route":
        cmd_route(args)
    elif args.command == "context":
        cmd_context(args)
    elif args.command == "compact":
        cmd_compact(args)
    elif args.command == "topics":
        cmd_topics(args)
    elif args.command == "config":
        if args.config_command == "validate":
            cmd_config_validate(args)
        else:
            print("Usage: topic-context config validate")
            sys.exit(1)


if __name__ == "__main__":
    main()
