"""Markdown section parser.

Turns a flat Markdown string into a tree of ``Section`` objects keyed on ATX
headings (``#`` to ``######``), and provides the lookups the agent tools are
built on.  Nothing here raises on odd input: a document without headings is
simply an empty tree.
"""

import re
from typing import Iterator

from papersum.models import ImageInfo, Section

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")
# ![alt](path) or ![alt](path "title")
_IMAGE_RE = re.compile(r'!\[([^\]]*)\]\(([^)\s]+)(?:\s+"([^"]*)")?\)')
_CONTEXT_CHARS = 100
_FRONT_MATTER_FENCE = "---"


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_sections(markdown: str) -> list[Section]:
    """Parse ``markdown`` into top-level sections, in document order.

    A leading YAML front-matter block is skipped.  Lines before the first
    heading have no section to belong to and are dropped.  Depth follows
    heading levels only, so skipped levels (``#`` then ``###``) nest under
    the nearest shallower heading.
    """
    lines = markdown.split("\n")
    flat: list[Section] = []
    current: Section | None = None
    buffer: list[str] = []

    for line in lines[_body_start(lines) :]:
        match = _HEADING_RE.match(line)
        if match:
            if current is not None:
                flat.append(_close_section(current, buffer))
            current = Section(title=match.group(2).strip(), level=len(match.group(1)))
            buffer = []
        elif current is not None:
            buffer.append(line)

    if current is not None:
        flat.append(_close_section(current, buffer))

    return _build_hierarchy(flat)


def _body_start(lines: list[str]) -> int:
    """Index of the first line after a leading front-matter block (0 if none)."""
    end = _front_matter_end(lines)
    return 0 if end is None else end + 1


def _front_matter_end(lines: list[str]) -> int | None:
    if not lines or lines[0].strip() != _FRONT_MATTER_FENCE:
        return None
    for index in range(1, len(lines)):
        if lines[index].strip() == _FRONT_MATTER_FENCE:
            return index
    return None


def _close_section(section: Section, buffer: list[str]) -> Section:
    section.content = "\n".join(buffer).strip()
    section.images = extract_images(section.content)
    return section


def _build_hierarchy(flat: list[Section]) -> list[Section]:
    roots: list[Section] = []
    stack: list[Section] = []

    for section in flat:
        # Anything at the same or a deeper level cannot be an ancestor.
        while stack and stack[-1].level >= section.level:
            stack.pop()
        if stack:
            stack[-1].subsections.append(section)
        else:
            roots.append(section)
        stack.append(section)

    return roots


def extract_images(content: str) -> list[ImageInfo]:
    """Return every Markdown image reference in ``content``, in order."""
    images: list[ImageInfo] = []
    for match in _IMAGE_RE.finditer(content):
        alt, path, title = match.groups()
        start = max(0, match.start() - _CONTEXT_CHARS)
        end = min(len(content), match.end() + _CONTEXT_CHARS)
        images.append(
            ImageInfo(
                path=path,
                caption=title or alt or None,
                position=match.start(),
                context=content[start:end],
            )
        )
    return images


# ---------------------------------------------------------------------------
# Traversal and lookup
# ---------------------------------------------------------------------------


def iter_sections(sections: list[Section]) -> Iterator[Section]:
    """Yield every section of the tree in pre-order (document order)."""
    for section in sections:
        yield section
        yield from iter_sections(section.subsections)


def get_section_titles(sections: list[Section]) -> list[str]:
    return [section.title for section in iter_sections(sections)]


def count_sections(sections: list[Section]) -> int:
    return sum(1 for _ in iter_sections(sections))


def find_section(sections: list[Section], title: str) -> Section | None:
    """Depth-first, case-insensitive exact title match; first hit wins."""
    wanted = title.casefold()
    for section in iter_sections(sections):
        if section.title.casefold() == wanted:
            return section
    return None


def get_section_content(sections: list[Section], title: str) -> str | None:
    """Return the named section's text with its whole subtree flattened in.

    Each descendant contributes a re-synthesized heading line
    (``"#" * level + " " + title``) followed by its own content, so the
    caller still sees the structure.  ``None`` when no section matches.
    """
    section = find_section(sections, title)
    if section is None:
        return None
    return _collect_content(section)


def _collect_content(section: Section) -> str:
    parts = [section.content]
    for sub in section.subsections:
        parts.append(f"\n\n{'#' * sub.level} {sub.title}\n\n")
        parts.append(_collect_content(sub))
    return "".join(parts)


def format_sections_for_agent(sections: list[Section]) -> str:
    """Indented bullet outline of the tree, annotated with image counts."""
    lines: list[str] = []

    def _emit(section: Section, depth: int) -> None:
        suffix = f" ({len(section.images)} images)" if section.images else ""
        lines.append(f"{'  ' * depth}- {section.title}{suffix}")
        for sub in section.subsections:
            _emit(sub, depth + 1)

    for section in sections:
        _emit(section, 0)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Front matter
# ---------------------------------------------------------------------------


def extract_front_matter(markdown: str) -> str | None:
    """Return the raw YAML between the leading ``---`` fences, if present."""
    lines = markdown.split("\n")
    end = _front_matter_end(lines)
    if end is None:
        return None
    return "\n".join(lines[1:end])


def remove_front_matter(markdown: str) -> str:
    lines = markdown.split("\n")
    end = _front_matter_end(lines)
    if end is None:
        return markdown
    return "\n".join(lines[end + 1 :]).strip()
