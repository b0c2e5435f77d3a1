"""Command line entry point of the geoview layer configuration resolver."""

import argparse
import logging
import sys


def setup_logging(verbose: bool = False):
    """
    Configure root logging for command line runs.

    Args:
        verbose: Log debug messages, including every metadata request
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )


def log_batch_summary(outcomes: dict[str, bool], skipped: list[str]):
    """Log which config files resolved cleanly when several were given."""
    resolved = [path for path, ok in outcomes.items() if ok]
    failed = [path for path, ok in outcomes.items() if not ok]

    logging.info("-" * 60)
    logging.info(f"Resolved {len(resolved)} of {len(outcomes) + len(skipped)} config file(s)")
    for path in resolved:
        logging.info(f"  ✓ {path}")
    for path in failed:
        logging.info(f"  ✗ {path}")
    for path in skipped:
        logging.info(f"  - {path} (skipped)")
    logging.info("-" * 60)


def cmd_resolve(args):
    """Handle resolve subcommand - resolve each config file in turn."""
    setup_logging(args.verbose)
    from geoview_config.cli import run_cli

    config_files = list(args.config)
    if args.output and len(config_files) > 1:
        logging.error("--output can only be used with a single config file")
        return 1

    outcomes: dict[str, bool] = {}
    for position, config_path in enumerate(config_files, 1):
        if len(config_files) > 1:
            logging.info(f"[{position}/{len(config_files)}] Resolving {config_path}")

        try:
            outcomes[config_path] = run_cli(config_path, output=args.output) == 0
        except KeyboardInterrupt:
            logging.warning(f"Interrupted while resolving {config_path}")
            outcomes[config_path] = False
            break
        except Exception as e:
            logging.exception(f"Unexpected error resolving {config_path}: {e}")
            outcomes[config_path] = False

        if not outcomes[config_path]:
            logging.error(f"✗ Errors in {config_path}")
            if args.stop_on_error:
                logging.error("Stopping at the first failing config (--stop-on-error)")
                break

    if len(config_files) > 1:
        log_batch_summary(outcomes, [path for path in config_files if path not in outcomes])

    return 0 if all(outcomes.values()) and len(outcomes) == len(config_files) else 1


def cmd_list_types(args):
    """Handle list-types subcommand."""
    from geoview_config.core.config import LAYER_TYPES

    print("Supported geoview layer types:")
    print()

    for key, info in LAYER_TYPES.items():
        print(f"  {key:12} - {info.display_name}")
        print(f"                 Entries: {info.entry_kind.value}")

    return 0


def cmd_guess_type(args):
    """Handle guess-type subcommand - print the layer type guessed from each URL."""
    from geoview_config.config_api import ConfigApi

    exit_code = 0
    for url in args.url:
        layer_type = ConfigApi.guess_layer_type(url)
        if layer_type is None:
            print(f"{url}: unknown")
            exit_code = 1
        else:
            print(f"{url}: {layer_type}")

    return exit_code


def cmd_schema(args):
    """Handle schema subcommand - document the layer configuration schema."""
    from geoview_config.config_api import SCHEMA_PATH, load_schema

    if args.yaml:
        print(SCHEMA_PATH.read_text(encoding="utf-8"))
        return 0

    from jsonschema2md import Parser
    from rich.console import Console
    from rich.markdown import Markdown

    try:
        lines = Parser().parse_schema(load_schema())
    except (KeyError, TypeError, ValueError) as e:
        print(f"Could not document {SCHEMA_PATH.name}: {e}", file=sys.stderr)
        return 1

    Console().print(Markdown("\n".join(lines)))
    return 0


def main():
    """Parse the command line and run the selected subcommand."""
    parser = argparse.ArgumentParser(
        prog="geoview-config",
        description="Complete geoview layer configurations from their service metadata",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    resolve_parser = subparsers.add_parser("resolve", help="Resolve layer configurations against their services")
    resolve_parser.add_argument("config", nargs="+", help="YAML or JSON configuration file(s)")
    resolve_parser.add_argument("-o", "--output", help="Write the resolved JSON to this file instead of stdout")
    resolve_parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    resolve_parser.add_argument("--stop-on-error", action="store_true", help="Skip the remaining configs after a failure")
    resolve_parser.set_defaults(func=cmd_resolve)

    list_parser = subparsers.add_parser("list-types", help="List supported geoview layer types")
    list_parser.set_defaults(func=cmd_list_types)

    guess_parser = subparsers.add_parser("guess-type", help="Guess the geoview layer type of service URLs")
    guess_parser.add_argument("url", nargs="+", help="Service URL(s) or GeoCore UUID(s)")
    guess_parser.set_defaults(func=cmd_guess_type)

    schema_parser = subparsers.add_parser("schema", help="Document the layer configuration schema")
    schema_parser.add_argument("--yaml", action="store_true", help="Print the raw YAML schema")
    schema_parser.set_defaults(func=cmd_schema)

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
