"""
Prompt templates for the assistant.

System prompt construction, per-stage fusion instructions and the digest
prompt used when a day's conversation is folded into long-term memory.
"""

from typing import Sequence

from config import PersonaConfig

# --- Main chat ---
SYSTEM_PROMPT_TEMPLATE = (
    "You are {ai_name}. User = {user_name}. Bio: {bio}. Personality: {personality}.\n"
    "Your relevant memories:\n{memories}"
)

MEMORY_SEPARATOR = "\n\n"

# --- Fusion stages ---
SUMMARIZE_INSTRUCTION = "Summarise the dialogue so far."
LOGICAL_INSTRUCTION = "Answer logically."
CREATIVE_INSTRUCTION = "Answer creatively."
SYNTHESIZE_INSTRUCTION = (
    "Combine the information inside the tags into one balanced answer. "
    "<MEMORY> holds a digest of the conversation, <LOGICAL> an analytic draft "
    "and <CREATIVE> a creative draft."
)

TAG_MEMORY = "MEMORY"
TAG_LOGICAL = "LOGICAL"
TAG_CREATIVE = "CREATIVE"

# --- Daily digest ---
DIGEST_INSTRUCTION = (
    "Summarize this conversation to preserve key facts, decisions, tone, and ongoing themes."
)

# --- Check-ins and uploads ---
CHECK_IN_MESSAGE = "Hey there! Just checking in - how are you doing?"


def wrap_tag(tag: str, text: str) -> str:
    return f"<{tag}>{text}</{tag}>"


def build_system_prompt(persona: PersonaConfig, memories: Sequence[str]) -> str:
    """Persona fields plus any relevant long-term memories."""
    return SYSTEM_PROMPT_TEMPLATE.format(
        ai_name=persona.ai_name,
        user_name=persona.user_name,
        bio=persona.bio,
        personality=persona.personality,
        memories=MEMORY_SEPARATOR.join(memories),
    )


def build_digest_block(digest: str) -> str:
    return wrap_tag(TAG_MEMORY, digest)


def build_fusion_block(digest: str, logical: str, creative: str) -> str:
    """Digest and both drafts, each in its own tag pair, logical before creative."""
    return "".join([
        wrap_tag(TAG_MEMORY, digest),
        wrap_tag(TAG_LOGICAL, logical),
        wrap_tag(TAG_CREATIVE, creative),
    ])


def build_upload_prompt(instructions: str, content: str) -> str:
    return f"{instructions}\n\n```text\n{content}\n```"
