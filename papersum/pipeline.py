"""Per-document orchestration — one source file to one ``{stem}_summary.md``.

Steps
-----
1. Load the source as Markdown (PDFs are converted; see ``converter.py``).
2. Parse the section tree and run the summarization agent over it.
3. Assemble the report in document order.
4. Optionally prepend YAML front matter and write the file.

Nothing is written unless every step succeeded.
"""

import logging
import re
import threading
from datetime import datetime, timezone
from pathlib import Path

from papersum.agent import ProgressCallback, SummarizationAgent
from papersum.assembler import assemble_summary_markdown
from papersum.converter import load_markdown
from papersum.llm import ChatClient, create_client
from papersum.models import (
    AgentState,
    Config,
    ParseError,
    PipelineError,
    SummarizationProgress,
    SummaryResult,
)
from papersum.sections import extract_front_matter, parse_sections

logger = logging.getLogger(__name__)

SUMMARY_SUFFIX = "_summary"

_FRONT_MATTER_TITLE_RE = re.compile(r"""^title:\s*["']?(.*?)["']?\s*$""", re.MULTILINE)


def summarize_markdown(
    markdown: str,
    client,
    config: Config,
    on_progress: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
) -> tuple[str, AgentState]:
    """Summarize a Markdown document; return the report and the final agent state.

    The report has no front matter.
    """
    sections = parse_sections(markdown)
    if not sections:
        logger.warning("No headings found; the agent has no sections to work with")

    agent = SummarizationAgent(
        client,
        max_steps=config.max_steps,
        temperature=config.temperature,
        language=config.language,
        on_progress=on_progress,
        cancel_event=cancel_event,
    )
    state = agent.run(sections)
    return assemble_summary_markdown(state.summaries, sections), state


def summarize_file(
    source_path: Path,
    config: Config,
    on_progress: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
    client: ChatClient | None = None,
) -> SummaryResult:
    """Summarize one document end-to-end and write the report to disk.

    Raises:
        PipelineError: wraps any ``ParseError``, ``LLMError``,
            ``ConfigurationError``, ``SummarizationCancelled`` or other
            exception raised along the way.
    """
    try:
        return _run_pipeline(source_path, config, on_progress, cancel_event, client)
    except PipelineError:
        raise
    except Exception as e:
        raise PipelineError(source_path, e) from e


def _run_pipeline(
    source_path: Path,
    config: Config,
    on_progress: ProgressCallback | None,
    cancel_event: threading.Event | None,
    client: ChatClient | None,
) -> SummaryResult:
    if client is None:
        client = create_client(config)

    _report(on_progress, SummarizationProgress(stage="parsing", progress=5))
    markdown = load_markdown(source_path, reparse=config.reparse, extractor=config.extractor)
    if not markdown.strip():
        raise ParseError(f"Document is empty: {source_path}")
    logger.info("Loaded %s (%s chars)", source_path.name, f"{len(markdown):,}")

    def _scaled(progress: SummarizationProgress) -> None:
        # Agent progress occupies 10-90% of the overall run.
        _report(
            on_progress,
            progress.model_copy(update={"progress": 10 + progress.progress * 0.8}),
        )

    report, state = summarize_markdown(
        markdown, client, config, on_progress=_scaled, cancel_event=cancel_event
    )

    _report(on_progress, SummarizationProgress(stage="saving", progress=90))
    if config.front_matter:
        report = inject_front_matter(
            report,
            build_front_matter(
                title=_source_title(markdown, source_path),
                source=source_path.name,
                provider=config.provider,
                model=client.model,
            ),
        )

    output_path = get_output_path(source_path, config.output_dir)
    output_path.write_text(report, encoding="utf-8")
    logger.info("Summary written: %s", output_path)
    _report(on_progress, SummarizationProgress(stage="saving", progress=100))

    return SummaryResult(
        source_path=str(source_path),
        summary_path=str(output_path),
        sections_summarized=len(state.summaries),
        steps=state.step_count,
        status=state.status.value,
    )


def get_output_path(source_path: Path, output_dir: Path | None = None) -> Path:
    """``{stem}_summary.md`` in ``output_dir`` (created if needed) or beside the source."""
    directory = output_dir if output_dir is not None else source_path.parent
    directory.mkdir(parents=True, exist_ok=True)
    return directory / f"{source_path.stem}{SUMMARY_SUFFIX}.md"


# ---------------------------------------------------------------------------
# Front matter
# ---------------------------------------------------------------------------


def build_front_matter(
    title: str,
    source: str,
    provider: str,
    model: str,
    generated_at: datetime | None = None,
) -> str:
    """Render the YAML metadata block placed above a written summary."""
    generated_at = generated_at or datetime.now(timezone.utc)
    lines = [
        "---",
        f'title: "{_escape_yaml(title)}"',
        f'source: "{_escape_yaml(source)}"',
        f'summary_generated_at: "{generated_at.isoformat()}"',
        f'ai_provider: "{_escape_yaml(provider)}"',
        f'ai_model: "{_escape_yaml(model)}"',
        "---",
        "",
    ]
    return "\n".join(lines)


def inject_front_matter(content: str, front_matter: str) -> str:
    return front_matter + content


def _escape_yaml(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _source_title(markdown: str, source_path: Path) -> str:
    """Title from the source's own front matter, else the file stem."""
    front_matter = extract_front_matter(markdown)
    if front_matter:
        match = _FRONT_MATTER_TITLE_RE.search(front_matter)
        if match and match.group(1):
            return match.group(1)
    return source_path.stem


def _report(on_progress: ProgressCallback | None, progress: SummarizationProgress) -> None:
    if on_progress is not None:
        on_progress(progress)
