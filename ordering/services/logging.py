import json
import sys
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum


LEVELS = {"debug": 10, "info": 20, "warning": 30, "error": 40}
_threshold = LEVELS["info"]


def set_level(level: str) -> None:
    global _threshold
    _threshold = LEVELS.get((level or "info").lower(), LEVELS["info"])


def _default(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def log_event(level: str, event: str, **fields) -> None:
    if LEVELS.get(level.lower(), LEVELS["error"]) < _threshold:
        return
    payload = {
        "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "level": level.lower(),
        "event": event,
    }
    payload.update(fields or {})
    try:
        sys.stdout.write(json.dumps(payload, ensure_ascii=False, default=_default) + "\n")
    except Exception:
        # best-effort logging
        pass
