"""Utility functions for backup/restore operations."""

import calendar
import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .._utils import logger
from ..config import Frequency, parse_run_time


def generate_backup_id(now: Optional[datetime] = None) -> str:
    """Generate backup ID with timestamp.

    Returns:
        Backup ID in format: backup_YYYY-MM-DDTHH-MM-SS-ffffffZ
    """
    now = now or datetime.now(timezone.utc)
    timestamp = now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    return f"backup_{timestamp}"


def save_json_atomic(data: Dict[str, Any], output_path: Path) -> None:
    """Write JSON to a temporary file, then rename it over the target.

    Args:
        data: JSON-serializable dictionary
        output_path: Final file path
    """
    tmp_path = output_path.with_name(output_path.name + ".tmp")
    with open(tmp_path, "w") as f:
        json.dump(data, f, indent=2, default=str)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, output_path)

    logger.debug(f"Saved: {output_path}")


def load_json(path: Path) -> Dict[str, Any]:
    """Load a JSON file.

    Args:
        path: File path

    Returns:
        Parsed dictionary
    """
    with open(path, "r") as f:
        data = json.load(f)

    logger.debug(f"Loaded: {path}")
    return data


def _add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def add_period(moment: datetime, frequency: Frequency) -> datetime:
    """Advance a timestamp by one schedule period.

    Monthly and yearly steps clamp to the last day of a shorter month.
    """
    frequency = Frequency(frequency)
    if frequency == Frequency.DAILY:
        return moment + timedelta(days=1)
    if frequency == Frequency.WEEKLY:
        return moment + timedelta(weeks=1)
    if frequency == Frequency.MONTHLY:
        return _add_months(moment, 1)
    return _add_months(moment, 12)


def compute_initial_run(run_time: str, now: datetime) -> datetime:
    """Next occurrence of ``run_time`` (UTC) strictly after ``now``."""
    at = parse_run_time(run_time)
    now = now.astimezone(timezone.utc)
    candidate = now.replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate
