"""
Legacy Ledger Import
====================

Older deployments kept the ledger as a JSON array of tracking numbers and
the last processed sheet name in a text file. This loads both into SQLite.
Already present tracking numbers are left untouched.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Union

from ..domain.errors import ConfigurationError
from ..infrastructure.persistence import Database, SentTrackingRecord

logger = logging.getLogger(__name__)


def import_legacy_ledger(
    database: Database,
    tracking_file: Union[str, Path],
    last_sheet_file: Union[str, Path, None] = None,
) -> dict:
    """
    Returns:
        {"found": n, "imported": m, "lastSheet": name or None}
    """
    path = Path(tracking_file)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{path} is not valid JSON: {e}") from e

    if not isinstance(data, list):
        raise ConfigurationError(f"{path} must contain a JSON array of tracking numbers")

    numbers = [str(item).strip() for item in data if item is not None and str(item).strip()]
    imported = database.add_tracking_numbers(SentTrackingRecord(n) for n in numbers)
    logger.info(f"Imported {imported} of {len(numbers)} tracking numbers from {path}")

    last_sheet = _import_last_sheet(database, last_sheet_file)
    return {"found": len(numbers), "imported": imported, "lastSheet": last_sheet}


def _import_last_sheet(database: Database, last_sheet_file) -> Optional[str]:
    if not last_sheet_file:
        return None

    path = Path(last_sheet_file)
    if not path.exists():
        logger.info(f"No last processed sheet file at {path}")
        return None

    name = path.read_text(encoding="utf-8").strip()
    if name:
        database.save_processed_sheet(name)
        logger.info(f"Migrated last processed sheet: {name}")
    return name or None
