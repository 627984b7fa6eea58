"""Phone contact normalization."""

import re
from typing import Optional


def normalize_contact(raw: Optional[str]) -> Optional[str]:
    """Strip whitespace and force a leading '+'. Empty input yields None."""
    if not isinstance(raw, str):
        return None
    compact = re.sub(r"\s+", "", raw)
    if not compact or compact == "+":
        return None
    return compact if compact.startswith("+") else f"+{compact}"
