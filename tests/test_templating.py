import datetime as dt
import re

from leadpilot.leads.schemas import LeadRecord
from leadpilot.templating import render, resolve_path


def test_render_substitutes_dotted_paths():
    assert render("{{a.b}}", {"a": {"b": 5}}) == "5"
    assert render("Hi {{ lead.name }}!", {"lead": {"name": "Ana"}}) == "Hi Ana!"


def test_render_preserves_unresolved_tokens():
    assert render("{{missing.x}}", {}) == "{{missing.x}}"
    assert render("Hi {{lead.nickname}}", {"lead": {"name": "Ana"}}) == "Hi {{lead.nickname}}"
    assert render("Hi {{lead.name}}", {"lead": {"name": None}}) == "Hi {{lead.name}}"


def test_render_builtin_time_variables():
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}", render("{{currentDate}}", {}))

    moment = dt.datetime(2024, 5, 17, 14, 30, 5, 123, tzinfo=dt.timezone.utc)
    out = render("{{currentDate}} {{currentTime}} {{timestamp}}", {}, now=moment)
    assert out == f"2024-05-17 14:30:05 {int(moment.timestamp())}"


def test_render_accepts_camel_case_paths_for_snake_case_data():
    lead = LeadRecord(
        id="00000000-0000-0000-0000-000000000001",
        tenant_id="00000000-0000-0000-0000-000000000002",
        phone="5511999990000",
        name="Ana Souza",
        message_count=3,
    )
    context = {"lead": lead.template_context()}
    assert render("{{lead.firstName}} ({{lead.messageCount}})", context) == "Ana (3)"
    assert resolve_path({"lead": lead}, "lead.phone") == "5511999990000"


def test_render_leaves_non_strings_alone():
    assert render(42, {"a": 1}) == 42
    assert render(None, {}) is None
    assert render("flag={{on}}", {"on": True}) == "flag=true"
