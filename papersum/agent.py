"""Summarization agent — a bounded tool-calling loop over the section tree.

The model never sees the document directly.  It asks for the outline
(``getSections``), reads sections (``readSection``), records summaries
(``writeSummary``) and ends the run (``finalize``).  The loop is strictly
sequential: one chat request in flight, tool calls executed one at a time in
the order the model listed them.

State machine::

    running ──► awaiting_model ──► executing_tools ──► running
       │                 │                                ▲
       │                 └── no tool calls: nudge ────────┘
       ├── finalize executed ──► complete
       └── step ceiling reached ──► aborted (partial summaries kept)

Transport errors from the client propagate and end the run.
"""

import json
import logging
import threading
from typing import Callable

from papersum.models import (
    AgentState,
    AgentStatus,
    ChatMessage,
    LLMError,
    Section,
    SectionSummary,
    SummarizationCancelled,
    SummarizationProgress,
)
from papersum.prompts import CONTINUE_MESSAGE, INITIAL_USER_MESSAGE, build_system_prompt
from papersum.sections import count_sections, parse_sections
from papersum.tools import TOOL_DEFINITIONS, execute_tool_call

logger = logging.getLogger(__name__)

MAX_STEPS = 50
AGENT_TEMPERATURE = 0.3

ProgressCallback = Callable[[SummarizationProgress], None]


class SummarizationAgent:
    """Drives one model through the section tree until it finalizes.

    Args:
        client:       Anything with ``chat(messages, tools, temperature=...)``
                      returning a ``ChatCompletionResponse`` (normally
                      ``llm.ChatClient``).
        max_steps:    Ceiling on model turns.
        temperature:  Sampling temperature for every turn.
        language:     Optional output language for the summaries.
        on_progress:  Called with a ``SummarizationProgress`` at the start
                      and after every step.
        cancel_event: Checked before every step; when set the run raises
                      ``SummarizationCancelled``.
    """

    def __init__(
        self,
        client,
        *,
        max_steps: int = MAX_STEPS,
        temperature: float = AGENT_TEMPERATURE,
        language: str | None = None,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.client = client
        self.max_steps = max_steps
        self.temperature = temperature
        self.language = language
        self.on_progress = on_progress
        self.cancel_event = cancel_event

    def run(self, sections: list[Section]) -> AgentState:
        """Run the loop to completion and return the final state.

        The returned state's ``status`` is ``complete`` when the model called
        ``finalize`` and ``aborted`` when the step ceiling was hit first.

        Raises:
            LLMError: the client failed (after its own retries) or returned
                a response without choices.
            SummarizationCancelled: the cancel event was set.
        """
        total = count_sections(sections)
        state = AgentState(
            messages=[
                ChatMessage(role="system", content=build_system_prompt(self.language)),
                ChatMessage(role="user", content=INITIAL_USER_MESSAGE),
            ]
        )
        self._report(
            SummarizationProgress(stage="analyzing", progress=0, total_sections=total)
        )

        while True:
            if state.is_complete:
                state.status = AgentStatus.COMPLETE
                break
            if self.cancel_event is not None and self.cancel_event.is_set():
                logger.info("Cancellation requested after %d steps", state.step_count)
                raise SummarizationCancelled(
                    f"Summarization cancelled after {state.step_count} steps"
                )
            if state.step_count >= self.max_steps:
                state.status = AgentStatus.ABORTED
                logger.warning(
                    "Agent reached the step limit (%d) without finalizing; "
                    "keeping %d summaries",
                    self.max_steps,
                    len(state.summaries),
                )
                break

            self._step(state, sections)
            self._report(_progress_snapshot(state, total))

        logger.info(
            "Agent %s after %d steps: %d sections summarized",
            state.status.value,
            state.step_count,
            len(state.summaries),
        )
        return state

    def _step(self, state: AgentState, sections: list[Section]) -> None:
        state.step_count += 1
        state.status = AgentStatus.AWAITING_MODEL
        logger.debug("Agent step %d: calling model", state.step_count)

        response = self.client.chat(
            state.messages, TOOL_DEFINITIONS, temperature=self.temperature
        )
        if not response.choices:
            raise LLMError("Chat response contained no choices")

        choice = response.choices[0]
        message = choice.message
        state.messages.append(message)
        logger.debug(
            "Agent step %d: finish_reason=%s tool_calls=%d",
            state.step_count,
            choice.finish_reason,
            len(message.tool_calls or []),
        )

        # Every requested call gets a tool message, even when the provider
        # reports another finish reason, so tool_call_id pairing stays intact.
        if message.tool_calls:
            state.status = AgentStatus.EXECUTING_TOOLS
            for tool_call in message.tool_calls:
                result = execute_tool_call(tool_call, sections, state)
                state.messages.append(
                    ChatMessage(
                        role="tool",
                        content=json.dumps(result, ensure_ascii=False),
                        tool_call_id=tool_call.id,
                    )
                )
        elif not state.is_complete:
            state.messages.append(ChatMessage(role="user", content=CONTINUE_MESSAGE))

        state.status = AgentStatus.RUNNING

    def _report(self, progress: SummarizationProgress) -> None:
        if self.on_progress is not None:
            self.on_progress(progress)


def _progress_snapshot(state: AgentState, total: int) -> SummarizationProgress:
    done = len(state.processed_sections)
    percent = min(done / total * 100, 99.0) if total else 99.0
    return SummarizationProgress(
        stage="summarizing",
        progress=percent,
        current_section=state.processed_sections[-1] if done else None,
        completed_sections=list(state.processed_sections),
        total_sections=total,
    )


def run_summarization_agent(
    client,
    markdown: str,
    *,
    max_steps: int = MAX_STEPS,
    language: str | None = None,
    on_progress: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
) -> dict[str, SectionSummary]:
    """Parse ``markdown`` and run the agent over it; return the summary map."""
    sections = parse_sections(markdown)
    agent = SummarizationAgent(
        client,
        max_steps=max_steps,
        language=language,
        on_progress=on_progress,
        cancel_event=cancel_event,
    )
    return agent.run(sections).summaries
