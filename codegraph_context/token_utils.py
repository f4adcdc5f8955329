"""Token estimation shared by the assembler and the retriever."""

from __future__ import annotations

import math

# Roughly four characters per token for source code; errs on the side of
# overestimating so packed context stays under the model's limit.
CHARS_PER_TOKEN = 4.0


def estimate_tokens(text: str) -> int:
    """Estimate the token count of *text*."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)
