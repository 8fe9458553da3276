"""
Knowledge Base Generator

Summarizes every repository that has readme text, one model call per
repository, with at most `max_workers` calls in flight. Each call is
independent: a failure is logged and that repository is left out, the
others carry on. The barrier at the end waits for every call to settle.

Summaries are appended in completion order, so their order is not the
profile's repository order.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from ..config import DEFAULT_KB_MAX_WORKERS
from ..schema.core_schema import (
    KnowledgeBase,
    Profile,
    ProjectSummary,
    PromptMessage,
    Repository,
    TokenUsage,
    utc_now,
)
from ..chatbot.llm_client import LanguageModel

logger = logging.getLogger(__name__)

ANALYST_SYSTEM_PROMPT = (
    "You are a technical analyst specializing in extracting key information "
    "from project documentation."
)


def build_readme_prompt(repo: Repository) -> str:
    return (
        "Analyze this project's README and extract key technical information.\n\n"
        f"PROJECT: {repo.name}\n"
        f"DESCRIPTION: {repo.description or 'N/A'}\n"
        f"PRIMARY LANGUAGE: {repo.primary_language or 'N/A'}\n\n"
        "README CONTENT:\n"
        f"{repo.readme_content}\n\n"
        "Extract and summarize in 3-5 concise paragraphs:\n\n"
        "1. PROJECT PURPOSE: What problem does this solve? What does it do?\n"
        "2. TECHNICAL IMPLEMENTATION: Key technologies, frameworks, libraries, architecture used. Be specific.\n"
        "3. KEY FEATURES: Main functionality, what makes it notable.\n"
        "4. USAGE/DEPLOYMENT: Installation, commands, configuration mentioned.\n"
        "5. TECHNICAL INSIGHTS: Interesting implementation details, challenges solved.\n\n"
        "Be specific and technical. Include actual technology names from the README. Keep it concise."
    )


class KnowledgeBaseGenerator:
    """Builds a KnowledgeBase for one profile snapshot."""

    def __init__(
        self,
        llm_client: LanguageModel,
        max_workers: int = DEFAULT_KB_MAX_WORKERS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.llm_client = llm_client
        self.max_workers = max_workers
        self.clock = clock or utc_now

    def generate(self, profile: Profile) -> KnowledgeBase:
        logger.info("Generating knowledge base for %s", profile.username)

        repos = [r for r in profile.repositories if r.readme_content]
        logger.info("Analyzing %d repositories with READMEs", len(repos))

        summaries: List[ProjectSummary] = []
        total = TokenUsage()

        if repos:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {executor.submit(self._summarize, repo): repo for repo in repos}
                for future in as_completed(futures):
                    repo = futures[future]
                    try:
                        summary, usage = future.result()
                    except Exception:
                        logger.warning("Summarizing %s failed, skipping it", repo.name, exc_info=True)
                        continue
                    summaries.append(summary)
                    total = total + usage
                    logger.info("Analyzed %s: %d tokens", repo.name, usage.total_tokens)

        logger.info(
            "Generated knowledge base for %s: %d/%d summaries, %d tokens",
            profile.username,
            len(summaries),
            len(repos),
            total.total_tokens,
        )

        return KnowledgeBase(
            username=profile.username,
            generated_at=self.clock(),
            profile_scraped_at=profile.cached_at,
            project_summaries=summaries,
            tokens_used=total,
        )

    def _summarize(self, repo: Repository) -> Tuple[ProjectSummary, TokenUsage]:
        completion = self.llm_client.complete(
            [
                PromptMessage(role="system", content=ANALYST_SYSTEM_PROMPT),
                PromptMessage(role="user", content=build_readme_prompt(repo)),
            ]
        )
        return ProjectSummary(repository_name=repo.name, ai_summary=completion.text), completion.usage
