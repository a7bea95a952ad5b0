"""
One user turn end to end: memory lookup, pipeline, log, background digest.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from config import PersonaStore, Settings, StateStore
from consolidation import digest_pending_days, force_digest
from conversation_log import ConversationLog
from errors import PersistenceError
from llm import FragmentCallback, LLMClient
from memory import VectorMemoryStore
from pipeline import Pipeline, StageCallback
from prompts import build_system_prompt
from tokens import TokenEstimator

logger = logging.getLogger(__name__)


class Assistant:
    def __init__(
        self,
        settings: Settings,
        client: LLMClient,
        estimator,
        log: ConversationLog,
        memory: VectorMemoryStore,
        persona_store: PersonaStore,
        state_store: StateStore,
    ):
        self.settings = settings
        self.client = client
        self.estimator = estimator
        self.log = log
        self.memory = memory
        self.persona_store = persona_store
        self.state_store = state_store
        self.pipeline = Pipeline(settings, client, estimator)
        self._background = ThreadPoolExecutor(max_workers=1, thread_name_prefix="digest")
        self._pending: Optional[Future] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Assistant":
        client = LLMClient(settings)
        return cls(
            settings=settings,
            client=client,
            estimator=TokenEstimator(settings.model_exec),
            log=ConversationLog(settings.log_dir),
            memory=VectorMemoryStore(settings.memory_path, client),
            persona_store=PersonaStore(settings.config_path),
            state_store=StateStore(settings.state_path),
        )

    def system_prompt(self, prompt: str) -> str:
        memories = self.memory.query(prompt, self.settings.memory_top_k)
        return build_system_prompt(self.persona_store.get(), memories)

    def respond(
        self,
        prompt: str,
        fusion: Optional[bool] = None,
        on_fragment: Optional[FragmentCallback] = None,
        on_stage: Optional[StageCallback] = None,
    ) -> str:
        """Answer prompt and log the turn.

        Pipeline failures propagate and nothing is logged. A log write failure
        is reported but the answer is still returned.
        """
        if fusion is None:
            fusion = self.settings.fusion
        system = self.system_prompt(prompt)
        history = self.log.history()

        answer = self.pipeline.run(system, history, prompt, fusion, on_fragment, on_stage)

        try:
            self.log.append(prompt, answer)
        except PersistenceError as e:
            logger.warning("append log: %s", e)
            return answer

        self.schedule_digest()
        return answer

    def schedule_digest(self) -> Future:
        """Fold finished days into memory on the background worker."""
        self._pending = self._background.submit(
            digest_pending_days,
            self.settings, self.client, self.estimator,
            self.log, self.memory, self.state_store, self.log.today(),
        )
        self._pending.add_done_callback(_log_failure)
        return self._pending

    def digest_today(self) -> Optional[str]:
        """Digest today now, on the background worker."""
        return self._background.submit(
            force_digest,
            self.settings, self.client, self.estimator,
            self.log, self.memory, self.state_store, self.log.today(),
        ).result()

    def close(self) -> None:
        """Wait for background memory work to finish."""
        self._background.shutdown(wait=True)


def _log_failure(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.warning("Background digest failed: %s", exc)
