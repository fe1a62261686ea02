"""Handle normalization: '@Jack ' -> 'jack'"""

import re
from typing import Optional

HANDLE_PATTERN = re.compile(r"^[a-z0-9_]{1,15}$")


def normalize_handle(raw: Optional[str]) -> Optional[str]:
    """
    Normalized handle, or None if it is not a valid username
    """
    if not isinstance(raw, str):
        return None
    handle = raw.strip()
    if handle.startswith("@"):
        handle = handle[1:]
    handle = handle.strip().lower()
    return handle if HANDLE_PATTERN.match(handle) else None
