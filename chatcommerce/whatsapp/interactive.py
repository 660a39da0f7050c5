"""Builders for WhatsApp interactive payloads (reply buttons and list messages).

Limits enforced here are the platform's; anything longer is truncated and
anything beyond the count limits is dropped, so callers can pass raw
catalog/config data straight through.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

MAX_BUTTONS = 3
BUTTON_TITLE_MAX = 20
BUTTON_ID_MAX = 256
BODY_MAX = 1024
HEADER_MAX = 60
FOOTER_MAX = 60
LIST_BUTTON_MAX = 20
MAX_SECTIONS = 10
MAX_ROWS_PER_SECTION = 10
SECTION_TITLE_MAX = 24
ROW_ID_MAX = 200
ROW_TITLE_MAX = 24
ROW_DESCRIPTION_MAX = 72


@dataclass(frozen=True)
class ListRow:
    id: str
    title: str
    description: str | None = None


@dataclass
class ListSection:
    title: str
    rows: list[ListRow] = field(default_factory=list)


def truncate(value: str | None, limit: int) -> str:
    text = (value or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit]


def _decorate(payload: dict[str, Any], header: str | None, footer: str | None) -> dict[str, Any]:
    if header:
        payload["header"] = {"type": "text", "text": truncate(header, HEADER_MAX)}
    if footer:
        payload["footer"] = {"text": truncate(footer, FOOTER_MAX)}
    return payload


def build_button_payload(
    body: str,
    buttons: Sequence[tuple[str, str]],
    *,
    header: str | None = None,
    footer: str | None = None,
) -> dict[str, Any]:
    """`buttons` is a sequence of (id, title); only the first three are kept."""
    if not buttons:
        raise ValueError("at least one button is required")
    payload: dict[str, Any] = {
        "type": "button",
        "body": {"text": truncate(body, BODY_MAX)},
        "action": {
            "buttons": [
                {
                    "type": "reply",
                    "reply": {"id": truncate(button_id, BUTTON_ID_MAX), "title": truncate(title, BUTTON_TITLE_MAX)},
                }
                for button_id, title in list(buttons)[:MAX_BUTTONS]
            ]
        },
    }
    return _decorate(payload, header, footer)


def build_list_payload(
    body: str,
    button_label: str,
    sections: Sequence[ListSection],
    *,
    header: str | None = None,
    footer: str | None = None,
) -> dict[str, Any]:
    rendered_sections = []
    for section in list(sections)[:MAX_SECTIONS]:
        rows = []
        for row in section.rows[:MAX_ROWS_PER_SECTION]:
            rendered_row = {"id": truncate(row.id, ROW_ID_MAX), "title": truncate(row.title, ROW_TITLE_MAX)}
            if row.description:
                rendered_row["description"] = truncate(row.description, ROW_DESCRIPTION_MAX)
            rows.append(rendered_row)
        if rows:
            rendered_sections.append({"title": truncate(section.title, SECTION_TITLE_MAX), "rows": rows})
    if not rendered_sections:
        raise ValueError("a list message needs at least one row")
    payload: dict[str, Any] = {
        "type": "list",
        "body": {"text": truncate(body, BODY_MAX)},
        "action": {"button": truncate(button_label, LIST_BUTTON_MAX), "sections": rendered_sections},
    }
    return _decorate(payload, header, footer)
