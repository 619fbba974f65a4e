"""Namespace name generation."""

import random
import re
import string
from typing import Optional

MAX_NAMESPACE_LENGTH = 63
DEFAULT_PREFIX = "ephemeral"
SUFFIX_LENGTH = 7
_CHARSET = string.ascii_lowercase + string.digits
_INVALID_CHARS = re.compile(r"[^a-z0-9-]")


class NameGenerator:
    """Produces DNS-label-safe namespace names."""

    def __init__(self, seed: Optional[int] = None):
        self._random = random.Random(seed)

    def generate(self, hint: Optional[str] = None) -> str:
        """
        Resolve the namespace name for an ephemeral environment.

        An explicit hint is sanitized: lower-cased, underscores (and any other
        character outside ``[a-z0-9-]``) turned into hyphens, truncated to 63
        characters. No uniqueness check is made; an existing namespace of that
        name is reused. Without a usable hint the name is ``ephemeral-``
        followed by 7 random lowercase alphanumerics.

        Args:
            hint: Requested namespace name, may be empty

        Returns:
            Namespace name
        """
        if hint:
            sanitized = _INVALID_CHARS.sub("-", hint.lower().replace("_", "-"))
            sanitized = sanitized[:MAX_NAMESPACE_LENGTH].strip("-")
            if sanitized:
                return sanitized

        suffix = "".join(self._random.choice(_CHARSET) for _ in range(SUFFIX_LENGTH))
        return f"{DEFAULT_PREFIX}-{suffix}"
