"""Completion client — OpenAI chat completions behind a single text-in/text-out call.

Every generation in the app (cover-letter review, interview questions,
per-answer grading, the closing summary) goes through ``generate``:

  - one user message in, stripped text out
  - per-task temperature / max_tokens / timeout from ``token_budget``
  - no retries; any failure or empty output raises ``GenerationError``

``generate_stream`` yields chunks for the same call and is only used by the
quick-feedback endpoint.
"""

import logging
import os
import time

from errors import GenerationError
from token_budget import get_budget, get_tracker

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# LLM Configuration — OpenAI (or any OpenAI-compatible endpoint)
# ---------------------------------------------------------------------------

OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY', '')
OPENAI_MODEL = os.environ.get('OPENAI_MODEL', 'gpt-4o')
OPENAI_BASE_URL = os.environ.get('OPENAI_BASE_URL', '') or None

GENERIC_FAILURE_MESSAGE = 'Failed to generate an AI response. Please try again.'

if OPENAI_API_KEY:
    logger.info('LLM backend: OpenAI (%s)', OPENAI_MODEL)
else:
    logger.warning('No LLM backend configured — set OPENAI_API_KEY')

# Lazily created client; tests swap it via set_client()
_client = None


def set_client(client) -> None:
    """Replace the process-wide client (None resets to lazy init)."""
    global _client
    _client = client


def is_enabled() -> bool:
    return _client is not None or bool(OPENAI_API_KEY)


def _get_client():
    """Lazy-initialise the OpenAI client."""
    global _client
    if _client is not None:
        return _client
    if not OPENAI_API_KEY:
        raise GenerationError('No LLM backend configured — set OPENAI_API_KEY')

    from openai import OpenAI
    _client = OpenAI(api_key=OPENAI_API_KEY, base_url=OPENAI_BASE_URL)
    logger.info('Initialised OpenAI client (model=%s)', OPENAI_MODEL)
    return _client


def _resolve_params(task: str, temperature, max_tokens, timeout) -> dict:
    budget = get_budget(task)
    if temperature is not None:
        budget['temperature'] = temperature
    if max_tokens is not None:
        budget['max_tokens'] = max_tokens
    if timeout is not None:
        budget['timeout'] = timeout
    return budget


def generate(prompt: str, *, task: str = 'unknown', temperature: float = None,
             max_tokens: int = None, timeout: float = None) -> str:
    """Send ``prompt`` as a single user message and return the generated text.

    Raises GenerationError on transport/upstream failure, timeout, or when
    the model returns nothing.
    """
    params = _resolve_params(task, temperature, max_tokens, timeout)
    client = _get_client()
    tracker = get_tracker()

    t0 = time.time()
    try:
        response = client.chat.completions.create(
            model=OPENAI_MODEL,
            messages=[{'role': 'user', 'content': prompt}],
            temperature=params['temperature'],
            max_tokens=params['max_tokens'],
            timeout=params['timeout'],
        )
        text = response.choices[0].message.content if response.choices else None
    except Exception as e:
        elapsed = time.time() - t0
        tracker.log_call(task, len(prompt), 0, elapsed,
                         model=OPENAI_MODEL, failed=True)
        logger.error('[%s] completion failed after %.1fs: %s',
                     task, elapsed, str(e)[:200])
        raise GenerationError(GENERIC_FAILURE_MESSAGE) from e

    elapsed = time.time() - t0
    text = (text or '').strip()
    if not text:
        tracker.log_call(task, len(prompt), 0, elapsed,
                         model=OPENAI_MODEL, failed=True)
        logger.error('[%s] completion returned empty text', task)
        raise GenerationError(GENERIC_FAILURE_MESSAGE)

    logger.info('[%s] response in %.1fs: %d chars', task, elapsed, len(text))
    tracker.log_call(task, len(prompt), len(text), elapsed, model=OPENAI_MODEL)
    return text


def generate_stream(prompt: str, *, task: str = 'unknown',
                    temperature: float = None, max_tokens: int = None,
                    timeout: float = None):
    """Yield text chunks for ``prompt`` as they arrive.

    Errors surface as GenerationError from the iterator, so a caller that
    already started writing a response sees them mid-stream.
    """
    params = _resolve_params(task, temperature, max_tokens, timeout)
    client = _get_client()

    t0 = time.time()
    produced = 0
    try:
        stream = client.chat.completions.create(
            model=OPENAI_MODEL,
            messages=[{'role': 'user', 'content': prompt}],
            temperature=params['temperature'],
            max_tokens=params['max_tokens'],
            timeout=params['timeout'],
            stream=True,
        )
        for chunk in stream:
            if not chunk.choices:
                continue
            content = chunk.choices[0].delta.content
            if content:
                produced += len(content)
                yield content
    except Exception as e:
        get_tracker().log_call(task, len(prompt), produced, time.time() - t0,
                               model=OPENAI_MODEL, failed=True)
        logger.error('[%s] streaming completion failed: %s', task, str(e)[:200])
        raise GenerationError(GENERIC_FAILURE_MESSAGE) from e

    get_tracker().log_call(task, len(prompt), produced, time.time() - t0,
                           model=OPENAI_MODEL)
