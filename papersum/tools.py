"""The agent's four-tool contract: schemas, argument validation, handlers.

Tool calls arrive as a name plus a JSON-encoded argument string.  They are
validated into one of the ``ToolInvocation`` variants from ``models`` before
anything runs, so an unknown tool or a malformed payload is a
``ToolArgumentError`` rather than a surprise inside a handler.
``execute_tool_call`` turns every such error into a ``{"success": False}``
result for the model; the loop keeps going.
"""

import json
import logging
from typing import Any

from pydantic import TypeAdapter, ValidationError

from papersum.models import (
    AgentState,
    FinalizeCall,
    GetSectionsCall,
    ReadSectionCall,
    Section,
    SectionSummary,
    ToolArgumentError,
    ToolCall,
    ToolInvocation,
    WriteSummaryCall,
)
from papersum.sections import (
    count_sections,
    format_sections_for_agent,
    get_section_content,
)

logger = logging.getLogger(__name__)

_INVOCATION_ADAPTER: TypeAdapter = TypeAdapter(ToolInvocation)

# ---------------------------------------------------------------------------
# JSON schemas sent with every chat request
# ---------------------------------------------------------------------------


def _function(name: str, description: str, properties: dict, required: list[str]) -> dict:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


TOOL_DEFINITIONS: list[dict] = [
    _function(
        "getSections",
        "Get the titles and nesting of every section in the paper. "
        "Call this first to learn the paper's structure.",
        {},
        [],
    ),
    _function(
        "readSection",
        "Read the full content of one section, including its subsections.",
        {
            "sectionTitle": {
                "type": "string",
                "description": "Title of the section to read, as shown by getSections.",
            },
        },
        ["sectionTitle"],
    ),
    _function(
        "writeSummary",
        "Record the summary of one section. Format depends on the section type: "
        "normal, method, experiment or appendix.",
        {
            "sectionTitle": {"type": "string", "description": "Section title."},
            "sectionType": {
                "type": "string",
                "enum": ["normal", "method", "experiment", "appendix"],
                "description": "Section type.",
            },
            "summary": {
                "type": "string",
                "description": "Summary content in Markdown.",
            },
        },
        ["sectionTitle", "sectionType", "summary"],
    ),
    _function(
        "finalize",
        "Call once every section has been summarized to finish the task.",
        {},
        [],
    ),
]

TOOL_NAMES = tuple(tool["function"]["name"] for tool in TOOL_DEFINITIONS)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def parse_tool_call(tool_call: ToolCall):
    """Decode and validate a tool call into a ``ToolInvocation`` variant.

    An empty argument string is treated as ``{}`` (models often send that for
    parameterless tools).

    Raises:
        ToolArgumentError: unknown tool, invalid JSON, non-object arguments,
            or arguments that do not fit the tool's schema.
    """
    name = tool_call.function.name
    if name not in TOOL_NAMES:
        raise ToolArgumentError(
            f"Unknown tool: {name!r}. Available tools: {', '.join(TOOL_NAMES)}"
        )

    raw = tool_call.function.arguments.strip() or "{}"
    try:
        args = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ToolArgumentError(f"Could not parse arguments for {name}: {exc}") from exc
    if not isinstance(args, dict):
        raise ToolArgumentError(
            f"Arguments for {name} must be a JSON object, got {type(args).__name__}"
        )

    try:
        return _INVOCATION_ADAPTER.validate_python({**args, "tool": name})
    except ValidationError as exc:
        raise ToolArgumentError(
            f"Invalid arguments for {name}: {_compact_errors(exc)}"
        ) from exc


def _compact_errors(exc: ValidationError) -> str:
    """Pydantic errors as ``field: message`` pairs, without the variant tag."""
    parts: list[str] = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in TOOL_NAMES]
        parts.append(f"{'.'.join(loc) or 'arguments'}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def execute_tool_call(
    tool_call: ToolCall, sections: list[Section], state: AgentState
) -> dict[str, Any]:
    """Run one tool call against the section tree and the run state.

    Returns the JSON-serializable result to send back to the model.  Argument
    and lookup problems come back as ``{"success": False, "error": ...}``.
    """
    try:
        invocation = parse_tool_call(tool_call)
    except ToolArgumentError as exc:
        logger.warning("Rejected tool call %s: %s", tool_call.function.name, exc)
        return {"success": False, "error": str(exc)}

    logger.debug("Tool call %s %s", tool_call.function.name, tool_call.function.arguments)

    if isinstance(invocation, GetSectionsCall):
        return _get_sections(sections)
    if isinstance(invocation, ReadSectionCall):
        return _read_section(invocation, sections)
    if isinstance(invocation, WriteSummaryCall):
        return _write_summary(invocation, state)
    assert isinstance(invocation, FinalizeCall)
    return _finalize(state)


def _get_sections(sections: list[Section]) -> dict[str, Any]:
    return {
        "success": True,
        "sections": format_sections_for_agent(sections),
        "totalSections": count_sections(sections),
    }


def _read_section(call: ReadSectionCall, sections: list[Section]) -> dict[str, Any]:
    content = get_section_content(sections, call.section_title)
    if content is None:
        return {"success": False, "error": f"Section not found: {call.section_title}"}
    return {"success": True, "title": call.section_title, "content": content}


def _write_summary(call: WriteSummaryCall, state: AgentState) -> dict[str, Any]:
    # Titles are not checked against the tree; the assembler drops the ones
    # that match no section.
    state.summaries[call.section_title] = SectionSummary(
        title=call.section_title, type=call.section_type, content=call.summary
    )
    if call.section_title not in state.processed_sections:
        state.processed_sections.append(call.section_title)

    logger.info("Summarized section %r (%s)", call.section_title, call.section_type)
    return {
        "success": True,
        "message": f'Saved summary for section "{call.section_title}"',
    }


def _finalize(state: AgentState) -> dict[str, Any]:
    state.is_complete = True
    logger.info("Agent finalized with %d section summaries", len(state.summaries))
    return {
        "success": True,
        "message": "Summarization complete",
        "totalSections": len(state.summaries),
    }
