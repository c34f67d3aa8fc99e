from __future__ import annotations

import argparse
import asyncio
import logging
import os
from pathlib import Path

from rich.console import Console
from rich.panel import Panel

from .composer import PassageComposer
from .logging_utils import configure_logging, log_exception, setup_file_logger
from .prompts import build_generators, close_generators
from .settings import Settings

_LOGGER = logging.getLogger("gptjazz.cli")
_CONSOLE = Console()
_ERROR_CONSOLE = Console(stderr=True)


def render_error(context: str, exc: BaseException) -> None:
    _ERROR_CONSOLE.print(f"[bold red]{context} failed:[/bold red] {type(exc).__name__}: {exc}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gptjazz")
    sub = parser.add_subparsers(dest="command", required=True)

    compose = sub.add_parser("compose", help="Generate ABC passages in the terminal.")
    compose.add_argument("--style", type=str, default=None)
    compose.add_argument("--count", type=int, default=4, help="Passages to generate; 0 runs forever.")
    compose.add_argument("--model", type=str, default=None)
    compose.add_argument("--temperature", type=float, default=None)
    compose.add_argument("--output-dir", type=Path, default=None)
    compose.add_argument("--debug", action="store_true", help="Show the prompt/result console.")

    serve = sub.add_parser("serve", help="Run the completion HTTP endpoint.")
    serve.add_argument("--host", type=str, default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def _settings_for(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    updates: dict[str, object] = {}
    if getattr(args, "model", None):
        updates["model"] = args.model
    if getattr(args, "temperature", None) is not None:
        updates["temperature"] = args.temperature
    if getattr(args, "debug", False):
        updates["debug"] = True
    if getattr(args, "style", None):
        updates["style"] = args.style
    if not updates:
        return settings
    return Settings.model_validate({**settings.model_dump(), **updates})


async def _compose(settings: Settings, count: int, output_dir: Path | None) -> int:
    if output_dir is not None:
        output_dir.mkdir(parents=True, exist_ok=True)
    generators = build_generators(settings)
    composer = PassageComposer(generators, style=settings.style)
    written = 0
    try:
        async for passage in composer.passages(limit=count or None):
            written += 1
            if output_dir is not None:
                path = output_dir / f"passage_{written:03d}.abc"
                path.write_text(passage + "\n", encoding="utf-8")
                _LOGGER.info("Wrote %s", path)
            if not settings.debug:
                _CONSOLE.print(Panel(passage, title=f"{settings.style} #{written}", expand=False))
    finally:
        await close_generators(generators)
    return written


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        settings = _settings_for(args)

        if args.command == "compose":
            setup_file_logger()
            written = asyncio.run(_compose(settings, args.count, args.output_dir))
            _CONSOLE.print(f"Generated {written} passage(s) in the style of {settings.style}")
            return 0

        if args.command == "serve":
            import uvicorn

            from .server import create_app

            setup_file_logger()
            uvicorn.run(create_app(settings), host=args.host, port=args.port)
            return 0

        parser.print_help()
        return 1
    except KeyboardInterrupt:
        _CONSOLE.print("Stopped.")
        return 130
    except Exception as exc:
        debug = bool(os.environ.get("GPTJAZZ_DEBUG"))
        _LOGGER.warning("gptjazz CLI failed: %s", exc, exc_info=debug)
        log_exception("gptjazz CLI", exc)
        render_error("gptjazz CLI", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
