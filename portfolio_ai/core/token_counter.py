"""
Token counting and usage tracking.

Holds exact token counts reported by the model provider and the coarse
character-based estimate used before a request is sent.
"""

from dataclasses import dataclass

# Rough ratio for English text
CHARS_PER_TOKEN = 4


@dataclass(frozen=True)
class TokenUsage:
    """Token usage for a single model call.

    Contains exact token counts; the total is always derived, never stored.
    """
    input_tokens: int = 0
    output_tokens: int = 0

    def __post_init__(self):
        """Validate token counts are not negative."""
        if self.input_tokens < 0:
            raise ValueError("input_tokens cannot be negative")
        if self.output_tokens < 0:
            raise ValueError("output_tokens cannot be negative")

    @property
    def total_tokens(self) -> int:
        """Total tokens used (input + output)."""
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict:
        return {
            "input": self.input_tokens,
            "output": self.output_tokens,
            "total": self.total_tokens,
        }


def estimate_tokens(text: str) -> int:
    """Estimate the token count of a piece of text.

    Args:
        text: Text to be sent to the model

    Returns:
        Approximate token count (characters divided by 4)
    """
    return len(text or "") // CHARS_PER_TOKEN
