import json
import os
import sys
from datetime import datetime


_LEVELS = {"debug": 10, "info": 20, "warning": 30, "error": 40}


def log_event(level: str, event: str, **fields) -> None:
    level = level.lower()
    threshold = _LEVELS.get(os.getenv("LOG_LEVEL", "INFO").lower(), 20)
    if _LEVELS.get(level, 20) < threshold:
        return
    payload = {
        "ts": datetime.utcnow().isoformat() + "Z",
        "level": level,
        "event": event,
    }
    payload.update(fields or {})
    try:
        sys.stdout.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
    except (OSError, ValueError):
        # best-effort logging
        pass
