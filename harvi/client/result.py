from dataclasses import dataclass
from typing import Any, Optional, Union


@dataclass(frozen=True)
class Ok:
    value: Any = None
    # True when the value came from the local store instead of the server
    cached: bool = False

    ok = True


@dataclass(frozen=True)
class Err:
    error: str
    status_code: Optional[int] = None
    retryable: bool = True

    ok = False


Result = Union[Ok, Err]
