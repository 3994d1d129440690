"""Shared pytest fixtures for the papersum test suite."""

import itertools
import json
import logging
from unittest.mock import MagicMock

import pytest

from papersum.models import ChatCompletionResponse


# ---------------------------------------------------------------------------
# Logger isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_papersum_logger():
    """Clear the papersum logger between tests.

    ``main()`` calls ``setup_logging()``, which attaches handlers and sets
    ``propagate=False``.  Left in place, that breaks ``caplog`` in later tests.
    """
    logger = logging.getLogger("papersum")
    for h in logger.handlers[:]:
        h.close()
        logger.removeHandler(h)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    yield
    for h in logger.handlers[:]:
        h.close()
        logger.removeHandler(h)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

SAMPLE_MARKDOWN = """\
---
title: "Sparse Attention for Long Documents"
authors:
  - "A. Author"
---

Preamble text that belongs to no section.

# Abstract
We study sparse attention.

# Introduction
Long documents are hard.

## Background
Transformers scale quadratically.

![Attention pattern](images/fig1.png "Figure 1: sparse pattern")

Some text after the figure.

# Methods
Overview of the method.

## Sparse Kernel
The kernel keeps the top-k scores.

### Complexity
It runs in O(n log n).

## Training
We train for 10 epochs.

# Conclusion
Sparse attention works.
"""


@pytest.fixture
def sample_markdown() -> str:
    """A small paper with front matter, preamble, nested headings and one image."""
    return SAMPLE_MARKDOWN


# ---------------------------------------------------------------------------
# Canned chat responses
# ---------------------------------------------------------------------------


def _response_dict(message: dict, finish_reason: str) -> dict:
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "test-model",
        "choices": [{"index": 0, "message": message, "finish_reason": finish_reason}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


@pytest.fixture
def tool_response():
    """Factory: ``tool_response(("readSection", {"sectionTitle": "Intro"}), ...)``.

    Arguments may be a dict (JSON-encoded here) or a raw string, which lets
    tests send malformed payloads.  Call ids are unique across one test.
    """
    ids = itertools.count(1)

    def _make(*calls, finish_reason: str = "tool_calls") -> ChatCompletionResponse:
        tool_calls = []
        for name, args in calls:
            tool_calls.append(
                {
                    "id": f"call_{next(ids)}",
                    "type": "function",
                    "function": {
                        "name": name,
                        "arguments": args if isinstance(args, str) else json.dumps(args),
                    },
                }
            )
        message = {"role": "assistant", "content": None, "tool_calls": tool_calls}
        return ChatCompletionResponse.model_validate(_response_dict(message, finish_reason))

    return _make


@pytest.fixture
def text_response():
    """Factory for an assistant reply without tool calls."""

    def _make(content: str = "Working on it.") -> ChatCompletionResponse:
        message = {"role": "assistant", "content": content}
        return ChatCompletionResponse.model_validate(_response_dict(message, "stop"))

    return _make


@pytest.fixture
def raw_completion():
    """Factory for an object shaped like an openai SDK ``ChatCompletion``.

    Only ``model_dump()`` is used by ``ChatClient``.
    """

    def _make(message: dict | None = None, finish_reason: str = "stop") -> MagicMock:
        message = message or {"role": "assistant", "content": "Hello"}
        raw = MagicMock()
        raw.model_dump.return_value = _response_dict(message, finish_reason)
        return raw

    return _make


@pytest.fixture
def scripted_client():
    """Factory: a mock chat client replaying ``responses`` in order."""

    def _make(*responses) -> MagicMock:
        client = MagicMock()
        client.model = "test-model"
        client.base_url = "http://localhost:1234/v1"
        client.chat.side_effect = list(responses)
        return client

    return _make
