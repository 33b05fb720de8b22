from .errors import CodeConflict, InvalidCode, InvalidInput, NotFound, RelayError, StoreFailure
from .service import RelayService

__all__ = [
    "CodeConflict",
    "InvalidCode",
    "InvalidInput",
    "NotFound",
    "RelayError",
    "RelayService",
    "StoreFailure",
]
