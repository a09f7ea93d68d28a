"""Hashing utilities for graph versions and identifiers"""

import hashlib
import json
from typing import Any


def spec_digest(data: dict[str, Any], sort_keys: bool = True) -> str:
    """
    Generate the MD5 digest of a spec's canonical JSON serialisation.

    Args:
        data: Raw spec dictionary
        sort_keys: Whether to sort keys for consistent hashing (default: True)

    Returns:
        32-character hexadecimal MD5 hash

    Example:
        >>> len(spec_digest({"id": "greeting", "root": {"type": "text"}}))
        32
    """
    key_data = json.dumps(data, sort_keys=sort_keys, default=str)
    return hashlib.md5(key_data.encode()).hexdigest()
