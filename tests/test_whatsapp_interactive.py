import pytest

from chatcommerce.whatsapp.interactive import (
    BUTTON_TITLE_MAX,
    ROW_DESCRIPTION_MAX,
    ROW_TITLE_MAX,
    ListRow,
    ListSection,
    build_button_payload,
    build_list_payload,
)


def test_button_payload_keeps_three_buttons_and_truncates_titles():
    payload = build_button_payload(
        "Pick one",
        [
            ("a", "Browse the full product catalog"),
            ("b", "Cart"),
            ("c", "Support"),
            ("d", "Dropped"),
        ],
    )

    buttons = payload["action"]["buttons"]
    assert [button["reply"]["id"] for button in buttons] == ["a", "b", "c"]
    assert buttons[0]["reply"]["title"] == "Browse the full prod"
    assert all(len(button["reply"]["title"]) <= BUTTON_TITLE_MAX for button in buttons)
    assert payload["type"] == "button"


def test_button_payload_requires_a_button():
    with pytest.raises(ValueError):
        build_button_payload("Body", [])


def test_list_payload_caps_sections_rows_and_lengths():
    sections = [
        ListSection(
            title=f"Category number {index} with a long name",
            rows=[ListRow(id=f"p{index}-{row}", title="x" * 40, description="d" * 100) for row in range(12)],
        )
        for index in range(12)
    ]

    payload = build_list_payload("Catalog", "View Products", sections, header="Shop", footer="Thanks")

    rendered = payload["action"]["sections"]
    assert len(rendered) == 10
    assert all(len(section["rows"]) == 10 for section in rendered)
    assert all(len(section["title"]) <= 24 for section in rendered)
    row = rendered[0]["rows"][0]
    assert len(row["title"]) == ROW_TITLE_MAX
    assert len(row["description"]) == ROW_DESCRIPTION_MAX
    assert payload["header"] == {"type": "text", "text": "Shop"}
    assert payload["footer"] == {"text": "Thanks"}


def test_list_payload_skips_empty_sections():
    payload = build_list_payload(
        "Catalog",
        "View",
        [ListSection(title="Empty"), ListSection(title="Full", rows=[ListRow(id="1", title="One")])],
    )

    assert [section["title"] for section in payload["action"]["sections"]] == ["Full"]
    assert "description" not in payload["action"]["sections"][0]["rows"][0]

    with pytest.raises(ValueError):
        build_list_payload("Catalog", "View", [ListSection(title="Empty")])
