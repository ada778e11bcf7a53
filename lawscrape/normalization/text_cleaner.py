"""Text cleaning utilities for scraped legal text."""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field

# ASCII letters and digits, basic punctuation, en/em dash, whitespace.
DEFAULT_ALLOWED = r"a-zA-Z0-9.,;:'\"()\[\]\-–—\s"
# Printable ASCII plus whitespace.
PRINTABLE_ASCII = r"\x20-\x7E\s"


@dataclass(frozen=True)
class NormalizationRules:
    """Per-source normalization settings.

    Args:
        parse_html: Treat input as HTML and reduce it to text first.
        allowed: Body of a regex character class; everything outside it is removed.
        drop: Extra literal characters removed even if ``allowed`` admits them.
    """

    parse_html: bool = False
    allowed: str = DEFAULT_ALLOWED
    drop: str = ""
    _disallowed: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        pattern = re.compile(f"[^{self.allowed}]")
        object.__setattr__(self, "_disallowed", pattern)
        # Surviving markup would be re-parsed on a second pass.
        if self.parse_html and not all(self.removes(c) for c in "<&"):
            raise ValueError("HTML-parsing rules must not allow '<' or '&'")

    @classmethod
    def from_config(cls, config: dict | None) -> "NormalizationRules":
        config = config or {}
        allowed = config.get("allowed", "default")
        allowed = {"default": DEFAULT_ALLOWED, "printable_ascii": PRINTABLE_ASCII}.get(allowed, allowed)
        return cls(
            parse_html=bool(config.get("parse_html", False)),
            allowed=allowed,
            drop=config.get("drop", ""),
        )

    def removes(self, char: str) -> bool:
        return char in self.drop or bool(self._disallowed.match(char))

    def filter(self, text: str) -> str:
        text = self._disallowed.sub("", text)
        for char in self.drop:
            text = text.replace(char, "")
        return text


DEFAULT_RULES = NormalizationRules()
HTML_RULES = NormalizationRules(parse_html=True)


def strip_html(text: str) -> str:
    """Remove HTML tags and decode entities."""
    text = re.sub(r"<br\s*/?>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<p\b[^>]*>", "\n\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</p>", "", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    text = html.unescape(text)
    return text


def collapse_whitespace(text: str) -> str:
    """Collapse every whitespace run to one space and trim."""
    return re.sub(r"\s+", " ", text).strip()


def normalize_text(text: str, rules: NormalizationRules = DEFAULT_RULES) -> str:
    """Reduce scraped text to a single normalized line.

    Character filtering runs before whitespace collapse so that removing a
    character between two spaces cannot leave a double space behind.
    """
    if not text:
        return ""
    if rules.parse_html:
        text = strip_html(text)
    text = rules.filter(text)
    return collapse_whitespace(text)


def derive_number(label: str, prefix: str) -> str:
    """Strip a leading ``PREFIX`` word from a label.

    ``derive_number("SECTION 101", "section")`` returns ``"101"``. Labels that
    do not start with the prefix come back unchanged.
    """
    if not prefix:
        return label
    match = re.match(rf"\s*{re.escape(prefix)}\s+(\S.*)", label, flags=re.IGNORECASE | re.DOTALL)
    if not match:
        return label
    return match.group(1).strip()


def clean_section_number(number: str) -> str:
    """Normalize a section number (strip '§' or 'Sec.' prefix, extra whitespace)."""
    number = number.replace("§", "")
    number = re.sub(r"^\s*sec(?:tion)?\.?\s+", "", number, flags=re.IGNORECASE)
    number = re.sub(r"\s+", " ", number).strip()
    return number.rstrip(".")
