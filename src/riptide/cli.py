from __future__ import annotations

import argparse
import importlib
import sys
from pathlib import Path

from riptide.app import App
from riptide.config import Settings, configure_logging


def load_app(target: str) -> App:
    """
    Import `package.module:attr`. attr is an App or a zero-argument factory
    returning one.
    """
    module_name, separator, attribute = target.partition(":")
    if not separator or not module_name or not attribute:
        raise RuntimeError(f"expected module:attribute, got {target!r}")

    module = importlib.import_module(module_name)
    try:
        app = getattr(module, attribute)
    except AttributeError as exc:
        raise RuntimeError(f"{module_name} has no attribute {attribute!r}") from exc

    if not isinstance(app, App) and callable(app):
        app = app()
    if not isinstance(app, App):
        raise RuntimeError(f"{target} is not a riptide App")
    return app


def register_generate_command(subparsers: argparse._SubParsersAction) -> None:
    generate_parser = subparsers.add_parser("generate", help="Write the TypeScript client for an app.")
    generate_parser.add_argument("app", help="App to load, as module:attribute.")
    generate_parser.add_argument(
        "--out",
        default=None,
        help="Output .ts path (defaults to the app's output location, or stdout when it has none).",
    )


def run_generate_command(args: argparse.Namespace) -> int:
    app = load_app(args.app)
    if args.out:
        app.ts_output_location = args.out

    if not app.ts_output_location:
        sys.stdout.write(app.generate_code())
        return 0

    output_path = app.write_code()
    print(f"Generated {Path(output_path).resolve()}")
    return 0


def register_serve_command(subparsers: argparse._SubParsersAction) -> None:
    serve_parser = subparsers.add_parser("serve", help="Write the client and serve an app.")
    serve_parser.add_argument("app", help="App to load, as module:attribute.")


def run_serve_command(args: argparse.Namespace) -> int:
    app = load_app(args.app)
    app.start()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="riptide", description="Typed RPC routes with a generated TypeScript client.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_generate_command(subparsers)
    register_serve_command(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(Settings().log_level)

    if args.command == "generate":
        try:
            return run_generate_command(args)
        except Exception as exc:
            print(f"riptide: {exc}", file=sys.stderr)
            return 1
    if args.command == "serve":
        try:
            return run_serve_command(args)
        except Exception as exc:
            print(f"riptide: {exc}", file=sys.stderr)
            return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
