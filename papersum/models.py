"""Pydantic models, dataclasses, and exceptions for papersum.

This module only defines the *shape* of the data moving through the package:
the parsed section tree, the chat-completion wire entities, the closed set of
agent tool invocations, agent run state, progress/result reporting, and
runtime configuration.
Behaviour lives in ``sections``, ``llm``, ``tools``, ``agent`` and
``assembler``.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

SectionType = Literal["normal", "method", "experiment", "appendix"]
"""How the model classified a section when summarizing it.

- normal: Abstract, Introduction, Related Work, Discussion, Conclusion
- method: Method, Approach, Model, Framework
- experiment: Experiments, Evaluation, Results
- appendix: Appendix, Supplementary material
"""

ProviderPreset = Literal[
    "openai", "deepseek", "zhipu", "qwen", "openrouter", "lmstudio", "custom"
]

Role = Literal["system", "user", "assistant", "tool"]

# ---------------------------------------------------------------------------
# Document tree
# ---------------------------------------------------------------------------


class ImageInfo(BaseModel):
    """An image reference found inside a section's content.

    ``position`` is the character offset of the ``![...](...)`` match within
    the owning section's content; ``context`` is the surrounding text (up to
    100 characters either side).
    """

    path: str
    caption: str | None = None
    position: int
    context: str = ""


class Section(BaseModel):
    """A heading-delimited unit of a Markdown document.

    ``content`` is the text strictly between this heading and the next
    heading of any depth; text under deeper headings belongs to the
    corresponding ``subsections``.
    """

    title: str
    level: int = Field(ge=1, le=6)
    content: str = ""
    subsections: list["Section"] = Field(default_factory=list)
    images: list[ImageInfo] = Field(default_factory=list)


class SectionSummary(BaseModel):
    """One summary written by the agent through ``writeSummary``."""

    title: str
    type: SectionType
    content: str


# ---------------------------------------------------------------------------
# Chat-completion wire entities (OpenAI-compatible)
# ---------------------------------------------------------------------------


class FunctionCall(BaseModel):
    name: str
    arguments: str = ""


class ToolCall(BaseModel):
    """A tool invocation requested by the model.

    ``function.arguments`` is the raw JSON string as sent by the provider; it
    is only decoded (and validated) by ``tools.parse_tool_call``.
    """

    id: str
    type: Literal["function"] = "function"
    function: FunctionCall


class ChatMessage(BaseModel):
    role: Role
    content: str | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """Request-body form: unset optionals dropped, ``content`` always present."""
        payload = self.model_dump(exclude_none=True)
        payload.setdefault("content", None)
        if not self.tool_calls:
            payload.pop("tool_calls", None)
        return payload


class Choice(BaseModel):
    index: int = 0
    message: ChatMessage
    finish_reason: str | None = None


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionResponse(BaseModel):
    """The subset of a chat-completion response the agent relies on.

    Providers add vendor-specific fields; those are ignored.
    """

    id: str = ""
    model: str = ""
    choices: list[Choice] = Field(default_factory=list)
    usage: Usage | None = None


class ConnectionTestResult(BaseModel):
    """Outcome of ``ChatClient.test_connection``."""

    success: bool
    latency_ms: float | None = None
    model: str | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Agent tool invocations (discriminated union on ``tool``)
# ---------------------------------------------------------------------------


class _ToolArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class GetSectionsCall(_ToolArgs):
    tool: Literal["getSections"]


class ReadSectionCall(_ToolArgs):
    tool: Literal["readSection"]
    section_title: str = Field(alias="sectionTitle", min_length=1)


class WriteSummaryCall(_ToolArgs):
    tool: Literal["writeSummary"]
    section_title: str = Field(alias="sectionTitle", min_length=1)
    section_type: SectionType = Field(alias="sectionType")
    summary: str


class FinalizeCall(_ToolArgs):
    tool: Literal["finalize"]


ToolInvocation = Annotated[
    Union[GetSectionsCall, ReadSectionCall, WriteSummaryCall, FinalizeCall],
    Field(discriminator="tool"),
]
"""Discriminated union: pydantic selects the variant by the tool name."""

# ---------------------------------------------------------------------------
# Agent run state
# ---------------------------------------------------------------------------


class AgentStatus(str, Enum):
    RUNNING = "running"
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    COMPLETE = "complete"
    ABORTED = "aborted"


@dataclass
class AgentState:
    """Mutable state of one agent run.

    Created by ``SummarizationAgent.run`` and mutated only by the loop and
    the tool handlers it calls.  Never shared between runs.

    Attributes:
        processed_sections: Titles in the order they were first summarized.
        summaries:          Title → latest summary for that title.
        step_count:         Number of model turns taken so far.
        is_complete:        Set by the ``finalize`` tool.
        status:             Current state-machine state.
        messages:           Full conversation history sent to the model.
    """

    processed_sections: list[str] = field(default_factory=list)
    summaries: dict[str, SectionSummary] = field(default_factory=dict)
    step_count: int = 0
    is_complete: bool = False
    status: AgentStatus = AgentStatus.RUNNING
    messages: list[ChatMessage] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Progress and results
# ---------------------------------------------------------------------------


class SummarizationProgress(BaseModel):
    """Snapshot passed to progress callbacks during a run."""

    stage: Literal["parsing", "analyzing", "summarizing", "saving"]
    progress: float = 0.0
    current_section: str | None = None
    completed_sections: list[str] = Field(default_factory=list)
    total_sections: int | None = None


class SummaryResult(BaseModel):
    """Outcome of ``pipeline.summarize_file`` for one document."""

    source_path: str
    summary_path: str
    sections_summarized: int
    steps: int
    status: str


# ---------------------------------------------------------------------------
# Config (dataclass, not pydantic; holds runtime settings)
# ---------------------------------------------------------------------------


@dataclass
class Config:
    """Runtime configuration for a summarization run.

    Most fields correspond to CLI flags.

    Attributes:
        provider:           Preset used to fill in ``base_url`` and ``model``
                            when they are not given explicitly.
        base_url:           OpenAI-compatible API base URL (overrides preset).
        model:              Model identifier (overrides preset default).
        api_key:            API key.  ``None`` means ``LLM_API_KEY`` from the
                            environment is used.
        timeout_s:          Per-request timeout for one chat call.
        retries:            Total attempts per chat call before giving up.
        retry_base_delay_s: Backoff before the second attempt; doubles after
                            every further failure.
        temperature:        Sampling temperature for agent turns.  Kept low,
                            the task is structured extraction.
        max_output_tokens:  ``max_tokens`` sent with every chat call.
        max_steps:          Ceiling on agent iterations.  Reaching it ends
                            the run with whatever summaries exist.
        language:           Language the summaries should be written in.
                            ``None`` leaves the choice to the model.
        reparse:            Ignore a cached ``{stem}.md`` next to a PDF.
        extractor:          PDF extraction strategy: ``auto`` (docling with
                            pypdf fallback), ``docling`` or ``pypdf``.
        output_dir:         Where ``{stem}_summary.md`` is written.  ``None``
                            writes next to the source document.
        front_matter:       Prepend a YAML metadata block to the output file.
        verbose:            DEBUG-level logging.
    """

    provider: ProviderPreset = "deepseek"
    base_url: str | None = None
    model: str | None = None
    api_key: str | None = None
    timeout_s: float = 120.0
    retries: int = 3
    retry_base_delay_s: float = 1.0
    temperature: float = 0.3
    max_output_tokens: int = 4096
    max_steps: int = 50
    language: str | None = None
    reparse: bool = False
    extractor: Literal["auto", "docling", "pypdf"] = "auto"
    output_dir: Path | None = None
    front_matter: bool = True
    verbose: bool = False


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ParseError(Exception):
    """Raised when a source document cannot be turned into Markdown."""


class LLMError(Exception):
    """Raised when a chat call fails after all retries or returns an unusable response."""


class ConfigurationError(Exception):
    """Raised when the provider configuration is incomplete or unknown."""


class ToolArgumentError(Exception):
    """Raised when a tool call's name or arguments do not match the tool contract.

    Never escapes the agent loop: it is reported back to the model as a
    tool result.
    """


class SummarizationCancelled(Exception):
    """Raised at a step boundary when the caller's cancel event is set."""


class PipelineError(Exception):
    """Wraps any sub-error that occurs while summarizing one document.

    Attributes:
        source_path: The document that failed.
        cause:       The original exception.
    """

    def __init__(self, source_path: Path, cause: Exception) -> None:
        self.source_path = source_path
        self.cause = cause
        super().__init__(f"Summarization failed for {source_path}: {cause}")
