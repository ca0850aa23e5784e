"""depalign - Dependency graph resolver with platform alignment.

    Reads a manifest of root dependencies, constraints and platform rules,
    resolves it against a module repository and exports the resolved graph.

    Returns:
        int: Exit code
"""
import asyncio
import csv
import sys
import logging
import json
import os

from constants import ExitCodes, Constants
from common.logging_utils import configure_logging, extra_context, is_debug_enabled, Timer
from args import parse_args
from cli_config import load_config, apply_config, apply_resolution_overrides
from versioning.cache import TTLCache
from versioning.comparators import get_comparator
from resolution.errors import ManifestError, ResolutionFailedError
from resolution.manifest import load_manifest, load_repository
from resolution.propagator import resolve
from resolution.provider import CachingMetadataProvider


def is_remote(location):
    """Return True when the repository location is an HTTP(S) index."""
    return location.lower().startswith(("http://", "https://"))


def _metadata_cache():
    return TTLCache(Constants.METADATA_CACHE_TTL_SEC, Constants.METADATA_CACHE_MAX_ENTRIES)


async def run_resolution(request, location, comparator):
    """Resolve ``request`` against the repository at ``location``.

    Args:
        request (ResolutionRequest): Parsed manifest request.
        location (str): Repository file path or HTTP index base URL.
        comparator (VersionComparator): Version ordering to use.

    Returns:
        ResolvedGraph: The resolved graph.
    """
    if is_remote(location):
        # Imported lazily so file based runs never open an HTTP session
        from resolution.remote import RemoteMetadataProvider  # pylint: disable=import-outside-toplevel
        async with RemoteMetadataProvider(location, comparator, timeout=Constants.REQUEST_TIMEOUT) as remote:
            return await resolve(request, CachingMetadataProvider(remote, _metadata_cache()))
    provider = load_repository(location, comparator)
    return await resolve(request, CachingMetadataProvider(provider, _metadata_cache()))


def export_csv(graph, path):
    """Exports the resolved modules to a CSV file.

    Args:
        graph (ResolvedGraph): Resolved graph.
        path (str): File path to export the CSV.
    """
    headers = [
        "Group",
        "Name",
        "Version",
        "Reason",
        "Conflicted",
        "Requested Versions",
    ]
    rows = [headers]
    for selection in graph.modules:
        rows.append([
            selection.identity.group,
            selection.identity.name,
            selection.module.version,
            selection.reason.value,
            selection.conflicted,
            ";".join(selection.requested),
        ])
    try:
        with open(path, 'w', newline='', encoding='utf-8') as file:
            export = csv.writer(file)
            export.writerows(rows)
        logging.info("CSV file has been successfully exported at: %s", path)
    except (OSError, csv.Error) as e:
        logging.error("CSV file couldn't be written to disk: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)


def export_json(graph, path):
    """Exports the resolved graph (modules, edges, constraints) to a JSON file.

    Args:
        graph (ResolvedGraph): Resolved graph.
        path (str): File path to export the JSON.
    """
    try:
        with open(path, 'w', encoding='utf-8') as file:
            json.dump(graph.to_dict(), file, ensure_ascii=False, indent=4)
        logging.info("JSON file has been successfully exported at: %s", path)
    except OSError as e:
        logging.error("JSON file couldn't be written to disk: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)


def output_format(args):
    """Pick the export format from --format or the --output extension."""
    if getattr(args, "OUTPUT_FORMAT", None):
        return args.OUTPUT_FORMAT.lower()
    if args.OUTPUT.lower().endswith(".csv"):
        return "csv"
    return "json"


def print_graph(graph):
    for selection in graph.modules:
        line = f"{selection.module} ({selection.reason.value})"
        if selection.conflicted:
            line += f" <- {', '.join(selection.requested)}"
        print(line)


def _setup_logging(args):
    # Honor CLI --loglevel by passing it to centralized logger via env
    if getattr(args, "LOG_LEVEL", None):
        os.environ[Constants.ENV_LOG_LEVEL] = str(args.LOG_LEVEL).upper()
    configure_logging()
    logging.getLogger().setLevel(getattr(logging, str(args.LOG_LEVEL).upper(), logging.INFO))
    if getattr(args, "LOG_FILE", None):
        handler = logging.FileHandler(args.LOG_FILE, encoding="utf-8")
        handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
        logging.getLogger().addHandler(handler)


def main(argv=None):
    """Main function of the program."""
    logger = logging.getLogger(__name__)

    args = parse_args(argv)
    _setup_logging(args)

    # Config file first, CLI flags win
    apply_config(load_config(getattr(args, "CONFIG", None)))
    apply_resolution_overrides(args)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action="main")
        )

    try:
        manifest = load_manifest(args.MANIFEST)
        comparator = get_comparator(args.SCHEME or manifest.scheme)
    except (ManifestError, ValueError) as e:
        logging.error("Could not load manifest: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)

    with Timer() as timer:
        try:
            graph = asyncio.run(run_resolution(manifest.request, args.REPOSITORY, comparator))
        except ManifestError as e:
            logging.error("Could not load repository: %s", e)
            sys.exit(ExitCodes.FILE_ERROR.value)
        except ResolutionFailedError as e:
            logging.error("%s Resolution failed with %d error(s).", Constants.RESOLUTION, len(e.errors))
            sys.exit(ExitCodes.RESOLUTION_ERROR.value)

    if is_debug_enabled(logger):
        logger.debug(
            "Resolution finished",
            extra=extra_context(
                event="function_exit",
                component="cli",
                action="resolve",
                outcome="success",
                count=len(graph),
                duration_ms=timer.duration_ms(),
            )
        )

    # OUTPUT
    if getattr(args, "OUTPUT", None):
        if output_format(args) == "csv":
            export_csv(graph, args.OUTPUT)
        else:
            export_json(graph, args.OUTPUT)
    elif not args.QUIET:
        print_graph(graph)

    sys.exit(ExitCodes.SUCCESS.value)

if __name__ == "__main__":
    main()
