"""
Turn orchestration: single-shot and fusion modes.

Single-shot streams one completion over the assembled context. Fusion runs
summarize -> (logical || creative) -> synthesize and streams only the final
synthesis. Any stage failure propagates; the caller writes nothing to the log.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from config import Settings
from context import Message, build_messages
from llm import FragmentCallback, LLMClient
from prompts import (
    CREATIVE_INSTRUCTION,
    LOGICAL_INSTRUCTION,
    SUMMARIZE_INSTRUCTION,
    SYNTHESIZE_INSTRUCTION,
    build_digest_block,
    build_fusion_block,
)

logger = logging.getLogger(__name__)

StageCallback = Callable[[str], None]

STAGE_COMPLETE = "complete"
STAGE_SUMMARIZE = "summarize"
STAGE_ANALYZE = "analyze"
STAGE_SYNTHESIZE = "synthesize"


@dataclass(frozen=True)
class StageParams:
    temperature: float
    max_tokens: int


SINGLE_SHOT = StageParams(temperature=0.6, max_tokens=1024)
SUMMARIZE = StageParams(temperature=0.4, max_tokens=512)
LOGICAL = StageParams(temperature=0.2, max_tokens=512)
CREATIVE = StageParams(temperature=0.9, max_tokens=512)
SYNTHESIZE = StageParams(temperature=0.55, max_tokens=1024)


class Pipeline:
    def __init__(self, settings: Settings, client: LLMClient, estimator):
        self.settings = settings
        self.client = client
        self.estimator = estimator

    def assemble(self, system: str, history: Sequence[Message], prompt: str):
        return build_messages(system, history, prompt, self.settings.history_budget, self.estimator)

    def run(
        self,
        system: str,
        history: Sequence[Message],
        prompt: str,
        fusion: bool = False,
        on_fragment: Optional[FragmentCallback] = None,
        on_stage: Optional[StageCallback] = None,
    ) -> str:
        if fusion:
            return self.fusion(system, history, prompt, on_fragment, on_stage)
        return self.single_shot(system, history, prompt, on_fragment, on_stage)

    def single_shot(self, system, history, prompt, on_fragment=None, on_stage=None) -> str:
        _notify(on_stage, STAGE_COMPLETE)
        messages = self.assemble(system, history, prompt)
        # The assembled context already opens with the system message.
        return self.client.complete(
            self.settings.model_exec, None,
            SINGLE_SHOT.temperature, SINGLE_SHOT.max_tokens,
            messages, stream=True, on_fragment=on_fragment,
        )

    def fusion(self, system, history, prompt, on_fragment=None, on_stage=None) -> str:
        _notify(on_stage, STAGE_SUMMARIZE)
        digest = self.summarize(system, history, prompt)

        _notify(on_stage, STAGE_ANALYZE)
        logical, creative = self.analyze(digest, prompt)

        _notify(on_stage, STAGE_SYNTHESIZE)
        return self.synthesize(system, digest, logical, creative, prompt, on_fragment)

    def summarize(self, system: str, history: Sequence[Message], prompt: str) -> str:
        messages = self.assemble(system, history, prompt)
        digest = self.client.complete(
            self.settings.model_summary, SUMMARIZE_INSTRUCTION,
            SUMMARIZE.temperature, SUMMARIZE.max_tokens, messages,
        )
        logger.info("Fusion digest: %d chars", len(digest))
        return digest

    def analyze(self, digest: str, prompt: str):
        """Logical and creative drafts, run concurrently, returned in that order."""
        messages = [
            Message("system", build_digest_block(digest)),
            Message("user", prompt),
        ]
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="analyze") as pool:
            logical = pool.submit(
                self.client.complete, self.settings.model_logic, LOGICAL_INSTRUCTION,
                LOGICAL.temperature, LOGICAL.max_tokens, messages,
            )
            creative = pool.submit(
                self.client.complete, self.settings.model_creative, CREATIVE_INSTRUCTION,
                CREATIVE.temperature, CREATIVE.max_tokens, messages,
            )
            return logical.result(), creative.result()

    def synthesize(self, system, digest, logical, creative, prompt, on_fragment=None) -> str:
        messages = [
            Message("system", system),
            Message("system", build_fusion_block(digest, logical, creative)),
            Message("user", prompt),
        ]
        return self.client.complete(
            self.settings.model_exec, SYNTHESIZE_INSTRUCTION,
            SYNTHESIZE.temperature, SYNTHESIZE.max_tokens,
            messages, stream=True, on_fragment=on_fragment,
        )


def _notify(on_stage: Optional[StageCallback], stage: str) -> None:
    logger.debug("Pipeline stage: %s", stage)
    if on_stage:
        on_stage(stage)
