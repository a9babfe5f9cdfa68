"""
CLI entry point for factorio-extractor.

Usage:
    factorio-extractor extract [-d PATH] [-o OUT]   Run the data stage and write JSON
    factorio-extractor mods [-d PATH] [--all]       Show the mod load order
    factorio-extractor config [--init [PATH]]       Show or create configuration
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from factorio_extractor import __version__
from factorio_extractor.config import ExtractorConfig, write_default_config
from factorio_extractor.extractor import BootstrapError, CleanupError, Extractor, ExtractionLogger
from factorio_extractor.lua import ScriptError
from factorio_extractor.mods import (
    DependencyCycleError, ManifestError, ModListError, ModLoader, cleanup_quietly,
)

logger = logging.getLogger(__name__)


# Errors reported as a one-line message with exit code 1
EXTRACTION_ERRORS = (
    BootstrapError, CleanupError, DependencyCycleError, ManifestError,
    ModListError, ScriptError, OSError, ValueError,
)


def _load_config(args) -> ExtractorConfig:
    overrides = {
        "factorio_path": getattr(args, "path", None),
        "output": getattr(args, "output", None),
    }
    if getattr(args, "no_vanilla", False):
        overrides["vanilla"] = False
    if getattr(args, "no_added", False):
        overrides["added"] = False
    if getattr(args, "strict", False):
        overrides["strict_dependencies"] = True
    return ExtractorConfig(getattr(args, "config", None), overrides=overrides)


def cmd_extract(args):
    """Run the extraction and write the JSON document."""
    config = _load_config(args)
    if config.factorio_path is None and config.data_path is None:
        print("Error: no Factorio path (use -d or set FACTORIO_PATH)", file=sys.stderr)
        return 1

    run_log = ExtractionLogger(Path(args.log_file)) if args.log_file else None

    try:
        extractor = Extractor(config=config, output=config.output, run_log=run_log)
        result = extractor.extract()
    except EXTRACTION_ERRORS as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Mods:   {len(result.mods)} ({', '.join(result.mods)})")
    print(f"Errors: {result.error_count}")
    for failure in result.failures:
        print(f"  {failure.mod}/{failure.data_file}: {failure.message}")
    if result.output:
        print(f"Output: {result.output}")
    return 0


def cmd_mods(args):
    """List mods with versions, enabled ones in load order by default."""
    config = _load_config(args)
    loader = ModLoader(config.loader_options())

    found = []
    try:
        found = loader.all()
        if args.all:
            mods = found
        else:
            enabled = loader.enabled(found)
            mods = loader.sorted_dependencies(enabled, strict=config.strict_dependencies)
        for mod in mods:
            source = mod.archive.name if mod.archive else mod.directory
            print(f"{mod.name:<32} {mod.version:<12} {source}")
        print(f"\n{len(mods)} mods")
    except EXTRACTION_ERRORS as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        cleanup_quietly(found)

    return 0


def cmd_config(args):
    """Show effective configuration or write a default file."""
    if args.init is not None:
        path = write_default_config(Path(args.init) if args.init else None)
        print(f"Wrote {path}")
        return 0

    config = ExtractorConfig(getattr(args, "config", None))
    print(json.dumps(config.to_dict(), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="factorio-extractor",
        description="Factorio mod data extractor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    factorio-extractor extract -d ~/.factorio -o data.json
    factorio-extractor mods -d ~/.factorio
    factorio-extractor config --init
"""
    )
    parser.add_argument('--version', action='version', version=f'factorio-extractor {__version__}')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    parser.add_argument('-q', '--quiet', action='store_true', help='Only warnings and errors')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # extract
    extract_p = subparsers.add_parser('extract', help='Extract game data to JSON')
    extract_p.add_argument('-d', '--path', help='Factorio installation directory')
    extract_p.add_argument('-o', '--output', help='Output JSON file')
    extract_p.add_argument('--config', help='Configuration file')
    extract_p.add_argument('--no-vanilla', action='store_true', help='Skip the built-in mods')
    extract_p.add_argument('--no-added', action='store_true', help='Skip user-added mods')
    extract_p.add_argument('--strict', action='store_true',
                           help='Fail on dependency cycles instead of skipping those mods')
    extract_p.add_argument('--log-file', help='Append a JSONL run log to this file')
    extract_p.set_defaults(func=cmd_extract)

    # mods
    mods_p = subparsers.add_parser('mods', help='Show mods in load order')
    mods_p.add_argument('-d', '--path', help='Factorio installation directory')
    mods_p.add_argument('--config', help='Configuration file')
    mods_p.add_argument('--all', action='store_true', help='Show every discovered mod')
    mods_p.set_defaults(func=cmd_mods)

    # config
    config_p = subparsers.add_parser('config', help='Show or create configuration')
    config_p.add_argument('--config', help='Configuration file')
    config_p.add_argument('--init', nargs='?', const='', default=None, metavar='PATH',
                          help='Write a default configuration file')
    config_p.set_defaults(func=cmd_config)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.INFO
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING
    logging.basicConfig(level=level, format='%(asctime)s [%(levelname)s] %(message)s')

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
