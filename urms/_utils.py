import importlib.util
import logging
from datetime import datetime, timezone

logger = logging.getLogger("urms")


def ensure_dependency(module_name: str, package_name: str, feature: str) -> None:
    """Raise a helpful ImportError if an optional dependency is missing."""
    if importlib.util.find_spec(module_name) is None:
        raise ImportError(
            f"{feature} requires the '{package_name}' package. "
            f"Install with: pip install {package_name}"
        )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
