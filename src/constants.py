"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    RESOLUTION_ERROR = 4


class VersionSchemes(Enum):
    """Version schemes supported by the comparator registry.

    Args:
        Enum (string): Version schemes supported by the program.
    """

    GRADLE = "gradle"
    PEP440 = "pep440"
    SEMVER = "semver"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    SUPPORTED_SCHEMES = [
        VersionSchemes.GRADLE.value,
        VersionSchemes.PEP440.value,
        VersionSchemes.SEMVER.value,
    ]
    DEFAULT_VERSION_SCHEME = VersionSchemes.GRADLE.value
    SUPPORTED_FORMATS = ["json", "csv"]
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    ENV_LOG_LEVEL = "DEPALIGN_LOG_LEVEL"
    RESOLUTION = "[RESOLUTION]"

    # Fixpoint driver
    MAX_ALIGNMENT_ITERATIONS = 10
    # Upper bound on selection passes inside a single conflict resolution
    MAX_SELECTION_PASSES = 50

    # Metadata lookups
    METADATA_MAX_CONCURRENCY = 8
    METADATA_CACHE_TTL_SEC = 600
    METADATA_CACHE_MAX_ENTRIES = 10000
    REQUEST_TIMEOUT = 30  # Timeout in seconds for HTTP metadata requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3

    # Synthetic root of every resolution
    ROOT_GROUP = ""
    ROOT_NAME = "<root>"
