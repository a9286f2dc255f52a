"""Tests for parsing the model's reply into raw findings."""

import json

import pytest

from conftest import findings_reply
from diffscreen.llm_parsing import parse_review_response
from diffscreen.models import FindingKind


def _entry(**overrides):
    entry = {
        "kind": "Suggestion",
        "file": ".gitignore",
        "line_number": 5,
        "line": "output/",
        "explanation": "Anchor the pattern with a leading slash.",
    }
    entry.update(overrides)
    return entry


def test_parses_well_formed_reply():
    parsed = parse_review_response(findings_reply(_entry()), unit_index=3)

    assert parsed.warnings == []
    (finding,) = parsed.findings
    assert finding.kind is FindingKind.SUGGESTION
    assert finding.file_path == ".gitignore"
    assert finding.line_number == 5
    assert finding.line_text == "output/"
    assert finding.unit_index == 3
    assert finding.position == 0


def test_empty_findings_list():
    parsed = parse_review_response('{"findings": []}')
    assert parsed.findings == []
    assert parsed.warnings == []


def test_code_fence_is_stripped():
    text = "```json\n" + findings_reply(_entry()) + "\n```"
    assert len(parse_review_response(text).findings) == 1


def test_unknown_kind_is_dropped_but_others_survive():
    text = findings_reply(
        _entry(kind="Nitpick"),
        _entry(kind="Issue", line_number=4, line=".venv/"),
    )
    parsed = parse_review_response(text)

    assert [f.kind for f in parsed.findings] == [FindingKind.ISSUE]
    assert parsed.findings[0].position == 1
    (warning,) = parsed.warnings
    assert "Nitpick" in warning.message
    assert warning.entry["kind"] == "Nitpick"


def test_kind_label_is_case_and_space_insensitive():
    parsed = parse_review_response(
        findings_reply(_entry(kind="  issue "), _entry(kind="SUGGESTION"))
    )
    assert [f.kind for f in parsed.findings] == [FindingKind.ISSUE, FindingKind.SUGGESTION]


def test_missing_required_fields_are_dropped_one_by_one():
    text = findings_reply(
        _entry(explanation=""),
        {"kind": "Issue", "line": "x", "explanation": "no file"},
        _entry(line_number=None, line=None),
        {"file": "a.py", "line": "x", "explanation": "no kind"},
        _entry(),
    )
    parsed = parse_review_response(text)

    assert len(parsed.findings) == 1
    assert parsed.findings[0].position == 4
    messages = [w.message for w in parsed.warnings]
    assert messages == [
        "missing explanation",
        "missing file",
        "missing line number and line text",
        "missing kind",
    ]


def test_non_object_entries_are_dropped():
    parsed = parse_review_response(json.dumps({"findings": ["oops", 7, _entry()]}))
    assert len(parsed.findings) == 1
    assert len(parsed.warnings) == 2


def test_line_locator_variants():
    parsed = parse_review_response(
        findings_reply(
            _entry(line_number="12", line="  x = 1  "),
            _entry(line_number=None, line=7),
            _entry(line_number="L9", line=None),
        )
    )
    locators = [(f.line_number, f.line_text) for f in parsed.findings]
    assert locators == [(12, "  x = 1  "), (7, None), (9, None)]


@pytest.mark.parametrize("bad", ["ten", "42a", 0, -3, 4.5, True])
def test_non_integer_line_number_drops_entry(bad):
    parsed = parse_review_response(
        findings_reply(_entry(line_number=bad, line="y"), _entry(line_number=3, line="z"))
    )

    assert [f.line_number for f in parsed.findings] == [3]
    (warning,) = parsed.warnings
    assert "not a positive integer" in warning.message


def test_accepts_comment_schema_aliases():
    text = json.dumps(
        {
            "comments": [
                {
                    "comment_type": "Issue",
                    "in": "src/main.rs",
                    "line": "println!(\"debug\");",
                    "comment": "Leftover debug output.",
                }
            ]
        }
    )
    (finding,) = parse_review_response(text).findings
    assert finding.file_path == "src/main.rs"
    assert finding.line_number is None
    assert finding.line_text == 'println!("debug");'
    assert finding.explanation == "Leftover debug output."


def test_bare_list_reply():
    parsed = parse_review_response(json.dumps([_entry()]))
    assert len(parsed.findings) == 1


def test_salvages_complete_entries_from_truncated_reply():
    text = findings_reply(_entry(), _entry(line_number=4, line=".venv/"))[:-40]

    parsed = parse_review_response(text)

    assert len(parsed.findings) == 1
    assert parsed.findings[0].line_number == 5
    assert "salvaged 1 entries" in parsed.warnings[0].message


def test_unparseable_reply_yields_no_findings():
    parsed = parse_review_response("I could not find any problems, looks good!")
    assert parsed.findings == []
    assert len(parsed.warnings) == 1


def test_reply_without_findings_list():
    parsed = parse_review_response('{"summary": "fine"}')
    assert parsed.findings == []
    assert parsed.warnings[0].message == "reply has no findings list"


def test_empty_reply():
    parsed = parse_review_response("   ")
    assert parsed.findings == []
    assert parsed.warnings == []
