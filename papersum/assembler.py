"""Assemble agent summaries into the final Markdown report.

Output order is a function of the parsed tree alone, never of the order in
which the model wrote its summaries.  No file I/O and no front matter here;
``pipeline.py`` handles both.
"""

import logging

from papersum.models import Section, SectionSummary
from papersum.sections import iter_sections

logger = logging.getLogger(__name__)

DEFAULT_REPORT_TITLE = "Paper Summary"
_TOP_LEVEL = 2
_MAX_LEVEL = 6


def assemble_summary_markdown(
    summaries: dict[str, SectionSummary],
    sections: list[Section],
    title: str = DEFAULT_REPORT_TITLE,
) -> str:
    """Render ``summaries`` in the order and nesting of ``sections``.

    The report opens with ``# {title}``.  Top-level sections become ``##``
    headings and every level of nesting adds one ``#`` (capped at six).
    Sections without a summary are left out, but their descendants are still
    visited, so a summarized subsection keeps its place.  Summaries whose
    title matches no section are dropped.

    Args:
        summaries: Title → summary, as collected by the agent.
        sections:  The parsed tree the agent worked on.
        title:     Report heading.

    Returns:
        The Markdown report.
    """
    lookup = _SummaryLookup(summaries)
    lines: list[str] = [f"# {title}\n"]

    def _emit(section: Section, level: int) -> None:
        summary = lookup.get(section.title)
        if summary is not None:
            lines.append(f"{'#' * level} {section.title}\n")
            lines.append(summary.content)
            lines.append("")
        for sub in section.subsections:
            _emit(sub, min(level + 1, _MAX_LEVEL))

    for section in sections:
        _emit(section, _TOP_LEVEL)

    unmatched = lookup.unused(sections)
    if unmatched:
        logger.warning(
            "Dropping %d summaries with no matching section: %s",
            len(unmatched),
            ", ".join(repr(t) for t in unmatched),
        )

    return "\n".join(lines)


class _SummaryLookup:
    """Exact title match first, then a case-insensitive one."""

    def __init__(self, summaries: dict[str, SectionSummary]) -> None:
        self._exact = summaries
        self._folded: dict[str, SectionSummary] = {}
        for key, summary in summaries.items():
            self._folded.setdefault(key.casefold(), summary)

    def get(self, title: str) -> SectionSummary | None:
        summary = self._exact.get(title)
        if summary is None:
            summary = self._folded.get(title.casefold())
        return summary

    def unused(self, sections: list[Section]) -> list[str]:
        titles = {s.title.casefold() for s in iter_sections(sections)}
        return [key for key in self._exact if key.casefold() not in titles]
