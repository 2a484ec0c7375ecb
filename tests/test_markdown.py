import pytest

from dltspec.errors import TemplateSyntaxError
from dltspec.markdown import parse_document, parse_template, split_sections, tokenize
from dltspec.models import Appendix, PlaceholderToken, Template, TextToken
from dltspec.resolver import resolve


def test_tokenize_splits_text_and_placeholders():
    tokens = tokenize("specs/{date}_011_{api_name}.md")
    assert tokens == (
        TextToken(text="specs/"),
        PlaceholderToken(key="date"),
        TextToken(text="_011_"),
        PlaceholderToken(key="api_name"),
        TextToken(text=".md"),
    )


def test_tokenize_leaves_non_placeholder_braces_alone():
    tokens = tokenize('{{"type": "bearer"}} {"a": 1} {#anchor} {}')
    assert tokens == (TextToken(text='{"type": "bearer"} {"a": 1} {#anchor} {}'),)


def test_tokenize_treats_date_pattern_as_plain_placeholder():
    assert tokenize("{YYYY-MM-DD}") == (PlaceholderToken(key="YYYY-MM-DD"),)


def test_split_sections_ignores_headings_in_code_fences():
    text = "intro\n# Title\n\n```python\n# not a heading\n```\n## Sub {#sub}\nbody"
    preamble, sections = split_sections(text)

    assert preamble == "intro"
    assert [(s.level, s.heading, s.anchor) for s in sections] == [(1, "Title", None), (2, "Sub", "sub")]
    assert "# not a heading" in sections[0].body
    assert sections[1].body == "body"


def test_parse_template_reads_front_matter():
    text = (
        "---\n"
        "anchor: pagination\n"
        "placeholders: api_name, unused\n"
        "prompt.api_name: Which API?\n"
        "default.api_name: demo\n"
        "---\n"
        "## Details\n"
        "{api_name}\n"
    )
    template = parse_template(text, "appendix_x")

    assert isinstance(template, Appendix)
    assert template.target_anchor == "pagination"
    assert template.declared_placeholders == frozenset({"api_name", "unused"})
    assert template.prompts == {"api_name": "Which API?"}
    assert template.defaults == {"api_name": "demo"}
    assert [s.heading for s in template.sections] == ["Details"]


def test_parse_template_infers_declared_placeholders():
    template = parse_template("{lead}\n# {title}\n{body}\n", "plain")
    assert type(template) is Template
    assert template.declared_placeholders == frozenset({"lead", "title", "body"})


@pytest.mark.parametrize(
    "text",
    [
        "---\ntitle: never closed\n",
        "---\nkind: appendix\n---\n## A\n",
        "---\nkind: chapter\n---\n## A\n",
        "---\nnot a pair\n---\n",
        "---\ntitle: [unclosed\n---\n",
        "---\nplaceholders: {a: 1}\n---\n",
    ],
)
def test_parse_template_rejects_bad_front_matter(text):
    with pytest.raises(TemplateSyntaxError):
        parse_template(text, "broken")


def test_parse_document_survives_render():
    text = "# Spec\n\nintro\n\n## Pagination {#pagination}\n\nuse {cursor} literally\n\n### Offset\n\nx\n"
    document = parse_document(text, "spec_main")

    again = parse_document(document.to_markdown(), "spec_main")
    assert again == document
    assert document.anchors() == ["pagination"]
    assert "{cursor}" in document.sections[1].body


def test_tokenize_keeps_nested_literal_json():
    text = 'config = {"client": {"base_url": "x"}}\n'
    assert tokenize(text) == (TextToken(text=text),)
    assert resolve(parse_template(text, "t"), {}).preamble == 'config = {"client": {"base_url": "x"}}'


def test_tokenize_pairs_escapes_around_placeholders():
    tokens = tokenize('{{"auth": {{"token": "{token}"}}}}')
    assert tokens == (
        TextToken(text='{"auth": {"token": "'),
        PlaceholderToken(key="token"),
        TextToken(text='"}}'),
    )


def test_front_matter_is_yaml():
    text = (
        "---\n"
        'prompt.base_url: "What is the base URL: host and version?"\n'
        "placeholders: [api_name, base_url]\n"
        "default:\n"
        "  retries: 5\n"
        "---\n"
        "{api_name} {base_url} {retries}\n"
    )
    template = parse_template(text, "t")

    assert template.prompts == {"base_url": "What is the base URL: host and version?"}
    assert template.declared_placeholders == frozenset({"api_name", "base_url"})
    assert template.defaults == {"retries": "5"}
