"""
Token counting with the tokenizer of the target model family.
"""

import tiktoken

from errors import ConfigError

# Role/delimiter framing the endpoint counts for every message
MESSAGE_OVERHEAD = 4

FALLBACK_ENCODING = "cl100k_base"


class TokenEstimator:
    """Deterministic token counts for text and chat messages."""

    def __init__(self, model: str):
        try:
            self.encoding = tiktoken.encoding_for_model(model)
        except KeyError:
            try:
                self.encoding = tiktoken.get_encoding(FALLBACK_ENCODING)
            except (KeyError, ValueError) as e:
                raise ConfigError(f"No tokenizer available for {model}: {e}") from e

    def estimate(self, text: str) -> int:
        if not text:
            return 0
        return len(self.encoding.encode_ordinary(text))

    def message_cost(self, message) -> int:
        return MESSAGE_OVERHEAD + self.estimate(message.role) + self.estimate(message.content)
