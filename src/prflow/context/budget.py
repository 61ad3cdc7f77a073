"""Token-budget truncation for API-bound step inputs.

Token counts are approximated at four characters per token; no tokenizer
is involved.
"""

import logging
from typing import Dict, Mapping

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
TRUNCATION_MARKER = "\n\n[... truncated due to token limit ...]"


def estimate_tokens(text: str) -> int:
    return len(text) // CHARS_PER_TOKEN


def truncate_to_token_budget(
    files: Mapping[str, str],
    system_prompt: str,
    max_tokens: int,
) -> Dict[str, str]:
    """Bound the combined size of step inputs to a token ceiling.

    The system prompt is reserved first. Files are then taken in ascending
    name order: each file that fits is kept verbatim; the first file that
    does not fit is cut to the remaining budget, marked as truncated, and
    every later file is dropped.

    Args:
        files: Input name -> content.
        system_prompt: System prompt text sent alongside the inputs.
        max_tokens: Token ceiling; values <= 0 disable budgeting.

    Returns:
        The bounded mapping, in ascending name order. When budgeting is
        disabled the input mapping is returned unchanged; when the system
        prompt alone uses the whole budget the result is empty.
    """
    if max_tokens <= 0:
        return dict(files)

    remaining = max_tokens - estimate_tokens(system_prompt)
    if remaining <= 0:
        logger.warning(
            "System prompt exceeds token budget, dropping all inputs",
            extra={"max_tokens": max_tokens},
        )
        return {}

    result: Dict[str, str] = {}
    for name in sorted(files):
        content = files[name]
        tokens = estimate_tokens(content)
        if tokens <= remaining:
            result[name] = content
            remaining -= tokens
            continue

        keep_chars = remaining * CHARS_PER_TOKEN
        if keep_chars > 0:
            result[name] = content[:keep_chars] + TRUNCATION_MARKER
        dropped = [n for n in sorted(files) if n > name]
        logger.info(
            "Truncated inputs to token budget",
            extra={"truncated": name, "dropped": dropped, "max_tokens": max_tokens},
        )
        break

    return result
