"""
Intent Router

Input: user message + names of the developer's repositories.
Output: Intent
  - General:  skills, background, anything not about one project
  - Detailed: a question about exactly one known repository

One model call with a two-branch reply grammar:
    GENERAL
    DETAILED:<name>
Anything else is unclassifiable. Classification never raises: every
failure (model error, unparseable reply, unknown name) becomes General.
"""

import logging
from typing import List, Optional, Sequence

from ..errors import UnclassifiableResponse
from ..schema.core_schema import Intent, PromptMessage
from .llm_client import LanguageModel

logger = logging.getLogger(__name__)

GENERAL_TOKEN = "GENERAL"
DETAILED_PREFIX = "DETAILED:"

CLASSIFIER_SYSTEM_PROMPT = (
    "You are a classifier. Respond with only GENERAL or DETAILED:repo-name. Nothing else."
)


def parse_classification(raw: str) -> Intent:
    """
    Parse a classifier reply.

    Returns Intent.general() for GENERAL and Intent.detailed(name) for
    DETAILED:<name>, both matched case-insensitively on the keyword.
    Raises UnclassifiableResponse for anything else, including an empty name.
    """
    text = (raw or "").strip()
    upper = text.upper()

    if upper == GENERAL_TOKEN:
        return Intent.general()

    if upper.startswith(DETAILED_PREFIX):
        name = text[len(DETAILED_PREFIX):].strip()
        if name:
            return Intent.detailed(name)

    raise UnclassifiableResponse(text)


def match_entity(name: str, known_names: Sequence[str]) -> Optional[str]:
    """Case-insensitive lookup returning the canonical known name."""
    wanted = name.casefold()
    for known in known_names:
        if known.casefold() == wanted:
            return known
    return None


class IntentRouter:
    """Classifies a message as General or Detailed (about one project)."""

    def __init__(self, llm_client: LanguageModel):
        self.llm_client = llm_client

    def classify(self, utterance: str, known_entity_names: List[str]) -> Intent:
        # Nothing to route to: skip the model call entirely
        if not utterance or not utterance.strip() or not known_entity_names:
            return Intent.general()

        try:
            completion = self.llm_client.complete(self._build_messages(utterance, known_entity_names))
            logger.info("Intent classification: %s", completion.text.strip())
            parsed = parse_classification(completion.text)
        except UnclassifiableResponse as e:
            logger.warning("%s, defaulting to General", e)
            return Intent.general()
        except Exception:
            logger.warning("Intent detection failed, defaulting to General", exc_info=True)
            return Intent.general()

        if parsed.entity_name is None:
            return parsed

        matched = match_entity(parsed.entity_name, known_entity_names)
        if matched is None:
            logger.info("Classifier named unknown project %r, defaulting to General", parsed.entity_name)
            return Intent.general()
        return Intent.detailed(matched)

    def _build_messages(self, utterance: str, known_entity_names: List[str]) -> List[PromptMessage]:
        repo_list = ", ".join(known_entity_names)
        prompt = (
            "Classify this user question into one of two categories:\n\n"
            "GENERAL - Questions about:\n"
            "- Skills, languages, experience (e.g., \"Do you know Python?\")\n"
            "- Overall background, bio, who they are\n"
            "- General work history or interests\n"
            "- Anything NOT about a specific project\n\n"
            "DETAILED - Questions about a SPECIFIC project from this list:\n"
            f"{repo_list}\n\n"
            f"User question: \"{utterance}\"\n\n"
            "Respond with ONLY one of:\n"
            "- GENERAL\n"
            "- DETAILED:project-name\n\n"
            "Examples:\n"
            "\"Are you good at C#?\" → GENERAL\n"
            "\"Tell me about poly-ratings-llm\" → DETAILED:poly-ratings-llm\n"
            "\"What's your experience?\" → GENERAL\n"
            "\"How does the poly ratings project work?\" → DETAILED:poly-ratings-llm"
        )
        return [
            PromptMessage(role="system", content=CLASSIFIER_SYSTEM_PROMPT),
            PromptMessage(role="user", content=prompt),
        ]
