import json
from pathlib import Path
from typing import Any, Optional, Union

SNAPSHOT_PATH = Path(__file__).resolve().parent / "fixtures" / "finance_snapshot.json"

COLLECTIONS = (
    "user",
    "accounts",
    "transactions",
    "budgets",
    "goals",
    "alerts",
    "insights",
    "monthlyStats",
)


def load_snapshot(path: Optional[Union[str, Path]] = None) -> dict[str, Any]:
    """Read the bundled finance snapshot (or another document with the same layout)."""
    source = Path(path) if path else SNAPSHOT_PATH
    with source.open(encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"Snapshot {source} must contain a JSON object")
    unknown = set(data) - set(COLLECTIONS)
    if unknown:
        raise ValueError(f"Snapshot {source} has unknown collections: {sorted(unknown)}")
    return data
