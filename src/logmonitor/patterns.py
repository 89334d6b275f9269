"""Compilation of search strings and replacer rules.

Search definitions are compiled once per run into immutable ``SearchPattern``
objects; the tailer reuses them for every line.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from .config import ReplacerRule, SearchString
from .exceptions import ConfigurationError

_WORD_RE = re.compile(r"[^\W_]+")


@dataclass(frozen=True)
class Replacer:
    """A compiled replacer rule."""

    regex: re.Pattern[str]
    replacement: str

    def apply(self, text: str) -> str:
        return self.regex.sub(self.replacement, text)


@dataclass(frozen=True)
class SearchPattern:
    """A compiled search string plus the metadata used to name its metrics.

    Attributes:
        regex: Compiled matcher.
        display_name: Metric path segment for the pattern.
        match_exact_string: Whether the matcher only accepts whole tokens.
        case_sensitive: Whether the matcher is case sensitive.
        print_matched_string: Whether matched text is reported as its own metric.
        replacers: Rules applied to matched text before it is used in a metric name.
    """

    regex: re.Pattern[str]
    display_name: str
    match_exact_string: bool = False
    case_sensitive: bool = True
    print_matched_string: bool = False
    replacers: tuple[Replacer, ...] = ()

    def find_all(self, line: str) -> list[str]:
        """Return the text of every non-overlapping match in ``line``."""
        return [m.group() for m in self.regex.finditer(line)]

    def metric_fragment(self, matched: str) -> str:
        """Turn matched text into a metric name segment.

        Replacers run first; the result is capitalised per word when the
        pattern is case insensitive so differently-cased hits share a slot.
        """
        fragment = apply_replacers(matched.strip(), self.replacers)
        if not self.case_sensitive:
            fragment = capitalize_fully(fragment)
        return fragment


def capitalize_fully(text: str) -> str:
    """Capitalise every word: first character upper case, the rest lower case.

    A word is a run of letters and digits; everything else is kept as a separator.

    >>> capitalize_fully("DISK_FULL")
    'Disk_Full'
    """
    return _WORD_RE.sub(lambda m: m.group()[:1].upper() + m.group()[1:].lower(), text)


def apply_replacers(text: str, replacers: Iterable[Replacer]) -> str:
    """Apply replacer rules to ``text`` in declaration order."""
    if not text:
        return text
    for replacer in replacers:
        text = replacer.apply(text)
    return text


def compile_replacers(rules: Iterable[ReplacerRule]) -> tuple[Replacer, ...]:
    """Compile replacer rules.

    Raises:
        ConfigurationError: If a replacer regex is malformed.
    """
    compiled = []
    for rule in rules:
        try:
            compiled.append(Replacer(re.compile(rule.pattern), rule.replacement))
        except re.error as e:
            raise ConfigurationError(f"Invalid replacer pattern '{rule.pattern}': {e}") from e
    return tuple(compiled)


def _build_regex(search_string: SearchString) -> str:
    text = search_string.pattern.strip()
    if search_string.match_exact_string:
        return r"(?:(?<=\s)|^)" + re.escape(text) + r"(?=\s|$)"
    return text


def compile_search_patterns(
    search_strings: Iterable[SearchString],
    replacers: Iterable[ReplacerRule] = (),
) -> list[SearchPattern]:
    """Compile search strings into matchers.

    Args:
        search_strings: Declarative search definitions.
        replacers: Replacer rules shared by every pattern of the log.

    Returns:
        One SearchPattern per search string, in declaration order.

    Raises:
        ConfigurationError: If a pattern or replacer is malformed or empty.
    """
    compiled_replacers = compile_replacers(replacers)
    patterns = []
    for search_string in search_strings:
        if not search_string.pattern or not search_string.pattern.strip():
            raise ConfigurationError(
                f"Search string '{search_string.display_name}' has an empty pattern"
            )
        flags = 0 if search_string.case_sensitive else re.IGNORECASE
        try:
            regex = re.compile(_build_regex(search_string), flags)
        except re.error as e:
            raise ConfigurationError(
                f"Invalid pattern '{search_string.pattern}' for search string "
                f"'{search_string.display_name}': {e}"
            ) from e
        patterns.append(
            SearchPattern(
                regex=regex,
                display_name=search_string.display_name,
                match_exact_string=search_string.match_exact_string,
                case_sensitive=search_string.case_sensitive,
                print_matched_string=search_string.print_matched_string,
                replacers=compiled_replacers,
            )
        )
    return patterns
