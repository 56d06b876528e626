import pytest

from dripflow.templates import parse_wait_minutes, render_template


@pytest.mark.parametrize(
    "text,expected",
    [
        ("3 Days", 4320),
        ("2 hours", 120),
        ("1 Week", 10080),
        ("45 minutes", 45),
        ("5 Minutes", 5),
        ("3 Foo", 4320),
        ("Immediately", 1440),
        ("0 hours", 60),
        ("", 1440),
        ("5", 7200),
    ],
)
def test_parse_wait_minutes(text, expected):
    assert parse_wait_minutes(text) == expected


def test_render_template_replaces_known_fields():
    contact = {"name": "Ada", "email": "ada@example.com", "phone": None, "status": "Lead"}
    rendered = render_template(
        "Hi {{contact.name}} <{{contact.email}}> [{{contact.phone}}] {{contact.status}}",
        contact,
    )
    assert rendered == "Hi Ada <ada@example.com> [] Lead"


def test_render_template_leaves_unknown_placeholders():
    rendered = render_template("Plan: {{contact.plan}}", {"name": "Ada", "plan": "pro"})
    assert rendered == "Plan: {{contact.plan}}"


def test_render_template_repeated_placeholder():
    assert render_template("{{contact.name}}/{{contact.name}}", {"name": "Bo"}) == "Bo/Bo"


def test_render_template_name_and_phone():
    rendered = render_template(
        "Hi {{contact.name}}, call {{contact.phone}} {{contact.foo}}",
        {"name": "Ada", "phone": "555"},
    )
    assert rendered == "Hi Ada, call 555 {{contact.foo}}"
