"""Audit logging utilities for the ad-reply monitor.

Besides the regular ``logging`` output, the monitor keeps a JSON audit trail
of what it persisted, skipped, and escalated. One file per day per log kind:
``<logs_path>/actions/2026-02-04.json``, ``<logs_path>/errors/...``.
"""

import json
import logging
import uuid
from pathlib import Path
from typing import Any

from admonitor.utils.timestamps import now_iso, today_iso

logger = logging.getLogger(__name__)


def correlation_id() -> str:
    """Generate a UUID v4 string linking related audit entries."""
    return str(uuid.uuid4())


def log_action(log_dir: str | Path, entry: dict[str, Any]) -> None:
    """Append an entry to today's log file in ``log_dir``.

    Each log file contains a JSON object with a "date" field and an
    "entries" array. A corrupted file is replaced rather than blocking the
    write.

    Args:
        log_dir: Path to the log directory (e.g., logs/actions).
        entry: Dictionary containing the log entry fields.
            Required: timestamp, correlation_id, actor, action_type, target, result
            Optional: parameters, error, details

    Examples:
        >>> log_action("logs/actions", {
        ...     "timestamp": "2026-02-04T14:30:22Z",
        ...     "correlation_id": "abc-123",
        ...     "actor": "conversation_walker",
        ...     "action_type": "ad_reply_saved",
        ...     "target": "Alice",
        ...     "result": "created"
        ... })
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    date = today_iso()
    log_file = log_path / f"{date}.json"

    data: dict[str, Any] = {"date": date, "entries": []}
    if log_file.exists():
        try:
            data = json.loads(log_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Corrupted audit log %s, starting a new one", log_file)

    data.setdefault("entries", []).append(entry)

    log_file.write_text(
        json.dumps(data, indent=2, ensure_ascii=False),
        encoding="utf-8",
    )


def audit(
    logs_path: str | Path | None,
    kind: str,
    actor: str,
    action_type: str,
    target: str,
    result: str,
    **parameters: Any,
) -> None:
    """Write one audit entry under ``logs_path/kind``.

    A ``None`` logs path disables auditing. Failures to write are logged and
    never propagate to the caller.
    """
    if logs_path is None:
        return
    try:
        log_action(
            Path(logs_path) / kind,
            {
                "timestamp": now_iso(),
                "correlation_id": correlation_id(),
                "actor": actor,
                "action_type": action_type,
                "target": target,
                "result": result,
                "parameters": parameters,
            },
        )
    except OSError:
        logger.exception("Failed to write %s audit log", kind)


def read_recent_logs(log_dir: str | Path, count: int = 10) -> list[dict[str, Any]]:
    """Read the most recent entries from a log directory, newest first.

    Reads across multiple days if needed to reach ``count``.
    """
    log_path = Path(log_dir)
    if not log_path.exists():
        return []

    entries: list[dict[str, Any]] = []
    for log_file in sorted(log_path.glob("*.json"), reverse=True):
        if len(entries) >= count:
            break
        try:
            data = json.loads(log_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            continue
        file_entries = data.get("entries", [])
        file_entries.reverse()
        entries.extend(file_entries)

    return entries[:count]
