from __future__ import annotations

import pytest
from conftest import load_fixture

from lawscrape.errors import ExtractionMismatch
from lawscrape.normalization.extractor import LeafSelectors, extract_fields, first_text

NY_LEAF = LeafSelectors.from_config({
    "fields": {
        "title": ".nys-openleg-result-title-headline",
        "location": ".nys-openleg-result-title-location",
        "content": ".nys-openleg-result-text",
    },
    "required": ["content"],
    "html_fields": ["content"],
})


def test_extracts_and_normalizes_fields():
    fields = extract_fields(load_fixture("ny_section_101.html"), NY_LEAF)
    assert fields == {
        "title": "Short title",
        "location": "Business Corporation (BSC) CHAPTER 4, ARTICLE 1",
        "content": '101. Short title. This chapter shall be known as the "Business Corporation Law".',
    }


def test_html_field_drops_entities_and_collapses_paragraphs():
    fields = extract_fields(load_fixture("ny_section_102.html"), NY_LEAF)
    assert fields["content"] == (
        '(a) As used in this chapter, unless the context otherwise requires, '
        'the term: (1) "Authorized person" means a person its agent.'
    )


def test_missing_required_node_raises():
    html = "<html><body><h3 class='nys-openleg-result-title-headline'>x</h3></body></html>"
    with pytest.raises(ExtractionMismatch) as excinfo:
        extract_fields(html, NY_LEAF, context="BSC > ARTICLE 1 > SECTION 101")
    assert excinfo.value.context == "BSC > ARTICLE 1 > SECTION 101"


def test_missing_optional_node_is_empty():
    html = "<div class='nys-openleg-result-text'>Body</div>"
    assert extract_fields(html, NY_LEAF) == {"title": "", "location": "", "content": "Body"}


def test_presence_selector_uses_required_fields():
    assert NY_LEAF.presence_selector == ".nys-openleg-result-text"
    everything = LeafSelectors(fields={"a": ".a", "b": ".b"})
    assert everything.presence_selector == ".a, .b"


class TestFirstText:
    def test_first_long_enough_selector_wins(self):
        html = "<div class='a'>short</div><div class='b'>" + "long " * 30 + "</div>"
        assert first_text(html, [".a", ".b"], min_length=100).startswith("long")

    def test_falls_back_to_longest_candidate(self):
        html = "<div class='a'>tiny</div><div class='b'>a bit longer</div>"
        assert first_text(html, [".a", ".b"], min_length=100) == "a bit longer"

    def test_falls_back_to_body(self):
        html = "<html><body><p>Only body text</p></body></html>"
        assert first_text(html, [".missing"]) == "Only body text"
