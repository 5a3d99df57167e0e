import json
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .common import get_brain_path, logger


def _emit_event(event_type: str, emitter: str, data: Optional[Dict[str, Any]] = None,
                description: str = "") -> Optional[str]:
    """Append an audit event to ledger/events.jsonl. Best effort: failures are only logged."""
    if data is None:
        data = {}
    try:
        brain = get_brain_path()
        events_path = brain / "ledger" / "events.jsonl"
        events_path.parent.mkdir(parents=True, exist_ok=True)

        event = {
            "event_id": f"evt-{int(time.time())}-{str(uuid.uuid4())[:8]}",
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "type": event_type,
            "emitter": emitter,
            "data": data,
            "description": description
        }

        with open(events_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(event, default=str) + "\n")
        return event["event_id"]
    except OSError as e:
        logger.warning(f"Failed to emit event {event_type}: {e}")
        return None


def _read_events(limit: int = 10) -> List[Dict[str, Any]]:
    """Most recent audit events, oldest first."""
    brain = get_brain_path()
    events_path = brain / "ledger" / "events.jsonl"

    if not events_path.exists():
        return []

    events = []
    with open(events_path, "r", encoding="utf-8") as f:
        for line in f:
            if not line.strip():
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning("Skipping corrupt line in events.jsonl")
    return events[-limit:]
