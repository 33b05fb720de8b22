"""Short, human-typable device codes derived from durable device ids."""

import re

from .errors import InvalidCode

CODE_LENGTH = 6
CODE_PATTERN = re.compile(r"^[A-Z0-9]{%d}$" % CODE_LENGTH)

def derive_code(device_id: str) -> str:
    """Uppercased fixed-length suffix of the id. Pure and total."""
    return device_id[-CODE_LENGTH:].upper()

def is_valid_code(code: str) -> bool:
    return bool(CODE_PATTERN.match(code))

def normalize_code(code) -> str:
    """Case-fold a controller-supplied code, rejecting anything off-shape."""
    if not isinstance(code, str):
        raise InvalidCode("code must be a string")
    normalized = code.strip().upper()
    if not is_valid_code(normalized):
        raise InvalidCode(f"code must be {CODE_LENGTH} letters or digits")
    return normalized
