"""Command line front end: chat REPL and one-shot agent/report commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TextIO

from schema_rag.agent.factory import build_orchestrator
from schema_rag.agent.orchestrator import RagOrchestrator
from schema_rag.config import get_settings
from schema_rag.errors import NotConfiguredError, RagError
from schema_rag.obs.logging import configure_logging
from schema_rag.schema import analytics_prompt_text


def run_chat_repl(
    orchestrator: RagOrchestrator,
    *,
    top_k: int = 3,
    stdin: TextIO = sys.stdin,
    stdout: TextIO = sys.stdout,
) -> None:
    """Read questions line by line until `exit` or end of input."""
    namespace = orchestrator.config.chat_namespace
    print("Database Chatbot CLI", file=stdout)
    print("====================", file=stdout)
    print("Type your database-related questions or 'exit' to quit.", file=stdout)
    print(f"Using the fixed namespace: {namespace}\n", file=stdout)

    while True:
        print("> ", end="", file=stdout, flush=True)
        line = stdin.readline()
        if not line:
            break
        question = line.strip()
        if question.lower() == "exit":
            print("Goodbye!", file=stdout)
            break
        if not question:
            continue

        try:
            result = orchestrator.run_chat(question, top_k)
        except RagError as exc:
            print(f"Error: {exc}\n", file=stdout)
            continue

        print("\nResponse:", file=stdout)
        print("---------", file=stdout)
        print(result.response, file=stdout)
        print(file=stdout)
        if result.sources:
            print("Sources:", file=stdout)
            print("--------", file=stdout)
            for index, source in enumerate(result.sources, start=1):
                print(f"{index}. {source}", file=stdout)
            print(file=stdout)


def _read(path: str | None) -> str:
    if not path:
        return ""
    return Path(path).read_text(encoding="utf-8")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="schema-rag", description=__doc__)
    commands = parser.add_subparsers(dest="command", required=True)

    chat = commands.add_parser("chat", help="interactive database Q&A")
    chat.add_argument("--top-k", type=int, default=3)

    agent = commands.add_parser("agent", help="propose a schema change and DDL")
    agent.add_argument("--request", required=True, help="file with the user request")
    agent.add_argument("--schema", help="file with the current schema JSON")
    agent.add_argument("--namespace", default="schemas-json")
    agent.add_argument("--top-k", type=int, default=5)
    agent.add_argument("--output-dir", help="write response.md, schema_changes.json, schema_ddl.sql")

    report = commands.add_parser("report", help="write an analytics report")
    report.add_argument("--analytics", required=True, help="file with analytics JSON")
    report.add_argument("--schema", help="file with the current schema JSON")
    report.add_argument("--output", help="write the report to this file")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)

    try:
        orchestrator = build_orchestrator(settings)
    except NotConfiguredError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    if args.command == "chat":
        run_chat_repl(orchestrator, top_k=args.top_k)
        return 0

    try:
        if args.command == "agent":
            result = orchestrator.run_agent(
                args.namespace, _read(args.schema), _read(args.request), args.top_k
            )
            if args.output_dir:
                out = Path(args.output_dir)
                out.mkdir(parents=True, exist_ok=True)
                (out / "response.md").write_text(result.response, encoding="utf-8")
                (out / "schema_changes.json").write_text(result.schema_changes, encoding="utf-8")
                (out / "schema_ddl.sql").write_text(result.schema_ddl, encoding="utf-8")
            print(result.response)
        else:
            text = orchestrator.run_report(
                analytics_prompt_text(_read(args.analytics)), _read(args.schema)
            )
            if args.output:
                Path(args.output).write_text(text, encoding="utf-8")
            print(text)
    except RagError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
