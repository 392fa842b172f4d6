from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from rich.console import Console
from rich.panel import Panel

from .assistant import UPLOAD_FAILED, NotesAssistant
from .config import load_config
from .errors import MalformedExportError
from .logging_config import configure_logging

console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Simple Insight - index a note export and ask questions about your notes."
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to a config YAML file (default: config.yaml).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logging.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    upload_parser = subparsers.add_parser(
        "upload",
        help="Upload a note export and rebuild the index.",
    )
    upload_parser.add_argument("file", type=Path, help="Path to the JSON note export.")

    subparsers.add_parser("load", help="Load stored notes and verify the index.")
    subparsers.add_parser("status", help="Show whether notes are stored and the index is ready.")

    ask_parser = subparsers.add_parser("ask", help="Ask a question about your notes.")
    ask_parser.add_argument("question", type=str, help="Question to ask over your notes.")
    ask_parser.add_argument(
        "--use-private",
        action="store_true",
        help="Include notes tagged 'private' in the context.",
    )

    funfact_parser = subparsers.add_parser("funfact", help="Show today's insight from your notes.")
    funfact_parser.add_argument("--force", action="store_true", help="Fetch a new one even if cached.")
    funfact_parser.add_argument(
        "--use-private",
        action="store_true",
        help="Include notes tagged 'private' in the context.",
    )
    return parser


async def _run(args: argparse.Namespace, assistant: NotesAssistant) -> int:
    if args.command == "upload":
        try:
            raw = args.file.read_bytes()
        except OSError as e:
            console.print(f"[red]Could not read {args.file}:[/red] {e}")
            return 1
        try:
            with console.status("Uploading notes and rebuilding the index..."):
                ready = await assistant.upload(raw)
        except MalformedExportError as e:
            console.print(f"[red]Error Loading Notes:[/red] {e}")
            return 1
        if not ready:
            console.print(f"[red]{UPLOAD_FAILED}[/red]")
            return 1
        console.print(f"[bold green]Indexed {len(assistant.session.note_map)} notes.[/bold green]")
        return 0

    with console.status("Loading notes..."):
        ready = await assistant.load()

    if args.command in ("load", "status"):
        if not assistant.has_notes:
            console.print("[yellow]No Notes[/yellow]")
            return 1
        state = "[green]ready[/green]" if ready else "[red]not ready[/red]"
        console.print(f"{len(assistant.session.note_map)} notes, index {state}")
        return 0 if ready else 1

    assistant.use_private_notes = args.use_private
    if args.command == "ask":
        with console.status("Thinking..."):
            answer = await assistant.ask(args.question)
        console.rule("[bold green]Answer[/bold green]")
        console.print(answer)
    else:
        with console.status("Looking through your notes..."):
            text = await assistant.fun_fact(force=args.force)
        console.print(Panel(text, title="Insight", expand=False))
    return 0


async def _main(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    assistant = NotesAssistant.from_config(cfg)
    try:
        return await _run(args, assistant)
    finally:
        await assistant.aclose()


def main() -> None:
    args = build_parser().parse_args()
    configure_logging(args.verbose)
    raise SystemExit(asyncio.run(_main(args)))


if __name__ == "__main__":
    main()
