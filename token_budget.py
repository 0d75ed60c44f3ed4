"""Token budget management — per-task generation settings, truncation, and usage tracking.

Provides:
  - Per-task temperature / max_tokens / timeout defaults
  - Input truncation helpers (cover letters, answers)
  - Token usage logging per call site
"""

import logging
import time

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Per-task generation budgets
# ---------------------------------------------------------------------------
# Questions use a higher temperature so repeated sessions on the same essay
# do not converge on identical questions.

TASK_BUDGETS = {
    'cover_letter_feedback':  {'max_tokens': 2500, 'temperature': 0.7, 'timeout': 120.0},
    'interview_question':     {'max_tokens': 500,  'temperature': 0.8, 'timeout': 60.0},
    'answer_feedback':        {'max_tokens': 1000, 'temperature': 0.7, 'timeout': 60.0},
    'comprehensive_feedback': {'max_tokens': 3000, 'temperature': 0.7, 'timeout': 180.0},
    'quick_feedback':         {'max_tokens': 1500, 'temperature': 0.7, 'timeout': 90.0},
    'chat_interview':         {'max_tokens': 800,  'temperature': 0.7, 'timeout': 60.0},
}

DEFAULT_BUDGET = {'max_tokens': 2000, 'temperature': 0.7, 'timeout': 60.0}

# ---------------------------------------------------------------------------
# Input size limits (chars)
# ---------------------------------------------------------------------------

INPUT_LIMITS = {
    'cover_letter': {
        'cover_letter_feedback': 8000,
        'interview_question': 6000,
        'quick_feedback': 8000,
        'chat_interview': 6000,
    },
    'answer': {
        'answer_feedback': 4000,
        'comprehensive_feedback': 2000,
    },
    'conversation': {
        'chat_interview': 8000,
    },
}


def get_budget(task: str) -> dict:
    """Return generation settings for a task (copy, safe to mutate)."""
    return dict(TASK_BUDGETS.get(task, DEFAULT_BUDGET))


# ---------------------------------------------------------------------------
# Text truncation helpers
# ---------------------------------------------------------------------------

def truncate_text(text: str, max_chars: int, label: str = 'text') -> str:
    """Truncate text to max_chars. Logs if truncation occurs."""
    if not text:
        return ''
    if len(text) <= max_chars:
        return text
    logger.info('Truncated %s: %d → %d chars', label, len(text), max_chars)
    return text[:max_chars]


def truncate_cover_letter(content: str, task: str) -> str:
    limit = INPUT_LIMITS['cover_letter'].get(task, 6000)
    return truncate_text(content, limit, f'cover letter ({task})')


def truncate_answer(answer: str, task: str) -> str:
    limit = INPUT_LIMITS['answer'].get(task, 4000)
    return truncate_text(answer, limit, f'answer ({task})')


# ---------------------------------------------------------------------------
# Token usage tracking / observability
# ---------------------------------------------------------------------------

class TokenTracker:
    """Tracks token usage per call site for observability."""

    def __init__(self, max_entries: int = 500):
        self._calls: list[dict] = []
        self._max_entries = max_entries

    def log_call(self, task: str, input_chars: int, output_chars: int,
                 elapsed_secs: float, model: str = '',
                 failed: bool = False) -> None:
        """Log a single LLM call."""
        # Rough token estimate: ~4 chars per token for English text
        est_input_tokens = input_chars // 4
        est_output_tokens = output_chars // 4

        entry = {
            'task': task,
            'timestamp': time.time(),
            'input_chars': input_chars,
            'output_chars': output_chars,
            'est_input_tokens': est_input_tokens,
            'est_output_tokens': est_output_tokens,
            'elapsed_secs': round(elapsed_secs, 2),
            'model': model,
            'failed': failed,
        }
        self._calls.append(entry)

        if len(self._calls) > self._max_entries:
            self._calls = self._calls[-self._max_entries:]

        logger.info(
            'TOKEN_USAGE | task=%s | input=%d chars (~%d tok) | '
            'output=%d chars (~%d tok) | %.1fs | failed=%s',
            task, input_chars, est_input_tokens,
            output_chars, est_output_tokens, elapsed_secs, failed
        )

    def summary(self) -> dict:
        """Return aggregate usage summary."""
        if not self._calls:
            return {'total_calls': 0}

        by_task = {}
        for c in self._calls:
            t = by_task.setdefault(c['task'], {'calls': 0, 'failed': 0,
                                               'input_tokens': 0,
                                               'output_tokens': 0})
            t['calls'] += 1
            t['failed'] += int(c['failed'])
            t['input_tokens'] += c['est_input_tokens']
            t['output_tokens'] += c['est_output_tokens']

        return {
            'total_calls': len(self._calls),
            'failed_calls': sum(1 for c in self._calls if c['failed']),
            'total_input_tokens': sum(c['est_input_tokens'] for c in self._calls),
            'total_output_tokens': sum(c['est_output_tokens'] for c in self._calls),
            'by_task': by_task,
        }

    def reset(self) -> None:
        self._calls = []


# Global tracker instance
_tracker = TokenTracker()


def get_tracker() -> TokenTracker:
    """Return the global token tracker instance."""
    return _tracker
