from __future__ import annotations

import re
from typing import Any

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def render_template(template: str | None, **values: Any) -> str:
    """Fill `{name}` placeholders; unknown ones are left as written."""

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        value = values.get(key)
        return match.group(0) if value is None else str(value)

    return _PLACEHOLDER.sub(_replace, template or "")
