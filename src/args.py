"""Argument parsing functionality for depalign."""

import argparse
from constants import Constants

def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="depalign",
        description=(
            "depalign - Dependency graph resolver with platform alignment"
        ),
        add_help=True,
    )

    parser.add_argument("-m", "--manifest",
                        dest="MANIFEST",
                        help="Manifest with root dependencies, constraints and platform rules (YAML or JSON)",
                        action="store", type=str,
                        required=True)
    parser.add_argument("-r", "--repository",
                        dest="REPOSITORY",
                        help="Module repository: a YAML/JSON file or the base URL of an HTTP JSON index",
                        action="store", type=str,
                        required=True)

    parser.add_argument("-o", "--output",
                        dest="OUTPUT",
                        help="Path to output file (JSON or CSV)",
                        action="store",
                        type=str)
    parser.add_argument("-f", "--format",
                        dest="OUTPUT_FORMAT",
                        help="Output format (json or csv). If not specified, inferred from --output extension; defaults to json.",
                        action="store",
                        type=str.lower,
                        choices=Constants.SUPPORTED_FORMATS)

    parser.add_argument("-s", "--scheme",
                        dest="SCHEME",
                        help="Version scheme used to order versions (default: taken from the manifest, else gradle)",
                        action="store",
                        type=str.lower,
                        choices=Constants.SUPPORTED_SCHEMES)
    parser.add_argument("--max-iterations",
                        dest="MAX_ITERATIONS",
                        help="Ceiling on alignment iterations before failing with non-convergence",
                        action="store",
                        type=int)
    parser.add_argument("--concurrency",
                        dest="CONCURRENCY",
                        help="Maximum concurrent metadata lookups",
                        action="store",
                        type=int)
    parser.add_argument("--cache-ttl",
                        dest="CACHE_TTL",
                        help="Metadata cache TTL in seconds",
                        action="store",
                        type=int)
    parser.add_argument("--timeout",
                        dest="TIMEOUT",
                        help="HTTP request timeout in seconds",
                        action="store",
                        type=int)

    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-q", "--quiet",
                        dest="QUIET",
                        help="Do not output to console.",
                        action="store_true")

    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML, YML, or JSON)",
                        action="store",
                        type=str)

    return parser.parse_args(argv)
