import json
import logging
from typing import Any

from .errors import InvalidInput

log = logging.getLogger("relay.payloads")

def encode(payload: Any) -> str:
    try:
        return json.dumps(payload, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"payload is not JSON-serializable: {e}") from e

def decode(row_id: int | None, text: str) -> Any:
    """Decode one stored payload; a broken row yields a marker instead of raising."""
    try:
        return json.loads(text)
    except (TypeError, ValueError) as e:
        log.error("stored payload id=%s is malformed: %s", row_id, e)
        return {"error": "malformed_payload", "id": row_id}
