"""Content extraction from leaf pages.

Everything here is pure: HTML in, normalized strings out.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from bs4 import BeautifulSoup, Tag

from ..errors import ExtractionMismatch
from .text_cleaner import DEFAULT_RULES, NormalizationRules, normalize_text


@dataclass(frozen=True)
class LeafSelectors:
    """Declarative description of the nodes read from a leaf page.

    Args:
        fields: Output field name to CSS selector.
        required: Fields whose node must exist, else ExtractionMismatch.
        html_fields: Fields read as inner HTML and reduced to text; others
            are read as node text.
        rules: Normalization applied to every field.
    """

    fields: dict[str, str]
    required: frozenset[str] = frozenset()
    html_fields: frozenset[str] = frozenset()
    rules: NormalizationRules = DEFAULT_RULES

    @classmethod
    def from_config(cls, config: dict) -> "LeafSelectors":
        return cls(
            fields=dict(config["fields"]),
            required=frozenset(config.get("required", [])),
            html_fields=frozenset(config.get("html_fields", [])),
            rules=NormalizationRules.from_config(config.get("normalization")),
        )

    @property
    def presence_selector(self) -> str:
        """Selector matching any node that marks a page as a leaf."""
        keys = sorted(self.required) or sorted(self.fields)
        return ", ".join(self.fields[k] for k in keys)


def inner_html(node: Tag) -> str:
    return node.decode_contents()


def _html_rules(rules: NormalizationRules) -> NormalizationRules:
    if rules.parse_html:
        return rules
    return NormalizationRules(parse_html=True, allowed=rules.allowed, drop=rules.drop + "<&")


def extract_fields(html: str, leaf: LeafSelectors, context: str = "") -> dict[str, str]:
    """Read and normalize each configured field of a leaf page.

    Raises:
        ExtractionMismatch: A required node is absent.
    """
    soup = BeautifulSoup(html, "html.parser")
    html_rules = _html_rules(leaf.rules)
    values = {}
    for name, selector in leaf.fields.items():
        node = soup.select_one(selector)
        if node is None:
            if name in leaf.required:
                raise ExtractionMismatch(f"No node matches {selector!r} for {name}", context=context)
            values[name] = ""
            continue
        if name in leaf.html_fields:
            values[name] = normalize_text(inner_html(node), html_rules)
        else:
            values[name] = normalize_text(node.get_text(" "), leaf.rules)
    return values


def first_text(html: str, selectors: Sequence[str], min_length: int = 0) -> str:
    """Return the text of the first selector whose node text is long enough.

    Falls back to the longest candidate found, then to the page body.
    """
    soup = BeautifulSoup(html, "html.parser")
    best = ""
    for selector in selectors:
        node = soup.select_one(selector)
        if node is None:
            continue
        text = node.get_text(" ", strip=True)
        if len(text) > min_length:
            return text
        if len(text) > len(best):
            best = text
    if best:
        return best
    body = soup.body or soup
    return body.get_text(" ", strip=True)

