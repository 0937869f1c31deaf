import logging
import os
from importlib import metadata

logger = logging.getLogger(__name__)


def get_version() -> str:
    try:
        return metadata.version("minimount")
    except metadata.PackageNotFoundError:
        logger.debug("minimount is not installed; no distribution metadata")

    # do not fail due to not able to find version
    return os.environ.get("MINIMOUNT_VERSION", "unknown")


__version__ = get_version()
