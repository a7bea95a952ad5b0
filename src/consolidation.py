"""
Daily memory consolidation.

Folds a finished day's conversation into one digest and stores it in the
vector memory, so later turns can recall it by similarity.
"""

import logging
from datetime import date
from typing import Optional

from config import Settings, StateStore
from context import trim_history
from conversation_log import ConversationLog, turns_to_messages
from errors import AssistantError
from llm import LLMClient
from memory import VectorMemoryStore
from pipeline import SUMMARIZE
from prompts import DIGEST_INSTRUCTION

logger = logging.getLogger(__name__)


def summarize_day(
    settings: Settings,
    client: LLMClient,
    estimator,
    log: ConversationLog,
    memory: VectorMemoryStore,
    day: date,
) -> Optional[str]:
    """Summarize one day's turns into memory. Returns the digest, or None for an empty day.

    Completion failures propagate; the memory write itself is best-effort.
    """
    turns = log.read(day)
    if not turns:
        return None

    messages = trim_history(turns_to_messages(turns), settings.history_budget, estimator)
    digest = client.complete(
        settings.model_summary, DIGEST_INSTRUCTION,
        SUMMARIZE.temperature, SUMMARIZE.max_tokens, messages,
    ).strip()
    if not digest:
        logger.warning("Empty digest for %s, nothing saved", day)
        return None

    if memory.append(digest):
        logger.info("Saved digest for %s (%d turns)", day, len(turns))
    return digest


def digest_pending_days(
    settings: Settings,
    client: LLMClient,
    estimator,
    log: ConversationLog,
    memory: VectorMemoryStore,
    state_store: StateStore,
    today: date,
) -> int:
    """Digest every logged day before today not yet digested. Returns days processed.

    Stops at the first failure so that day is retried next time.
    """
    state = state_store.get()
    last = state.last_digest_day
    forced = set(state.forced_digest_days)
    pending = [d for d in log.days() if d < today and (last is None or d.isoformat() > last)]
    done = 0
    for day in pending:
        key = day.isoformat()
        try:
            if key in forced:
                logger.info("Skipping %s, already digested on request", day)
            else:
                summarize_day(settings, client, estimator, log, memory, day)
            forced.discard(key)
            state_store.update(last_digest_day=key, forced_digest_days=tuple(sorted(forced)))
        except AssistantError as e:
            logger.warning("Digest for %s failed, will retry later: %s", day, e)
            break
        done += 1
    return done


def force_digest(
    settings: Settings,
    client: LLMClient,
    estimator,
    log: ConversationLog,
    memory: VectorMemoryStore,
    state_store: StateStore,
    day: date,
) -> Optional[str]:
    """Digest day now and mark it so the daily batch does not digest it again."""
    digest = summarize_day(settings, client, estimator, log, memory, day)
    if digest is not None:
        state = state_store.get()
        forced = set(state.forced_digest_days) | {day.isoformat()}
        state_store.update(forced_digest_days=tuple(sorted(forced)))
    return digest
