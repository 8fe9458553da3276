"""
Context Assembler

Pure functions that render the text sent alongside a user message:
  - persona:          who the model speaks as and how it behaves
  - general context:  profile, language usage, all projects, projects by language
  - detailed context: profile plus one project and its knowledge-base summary

Two different language orderings are used on purpose:
  - profile-wide language usage is ranked by number of repositories
  - a single repository's languages are ranked by byte percentage
"""

from typing import Dict, List

from ..schema.core_schema import KnowledgeBase, Profile, Repository

MAX_LANGUAGES_BY_PROJECT = 10
MAX_PROJECTS_PER_LANGUAGE = 10


def build_persona(profile: Profile) -> str:
    name = profile.display_name
    return (
        f"You are {name}, a software developer on GitHub.\n\n"
        "RULES:\n"
        f"- Respond in first person as {name}\n"
        "- Use the provided context to answer questions\n"
        "- Your LANGUAGE USAGE shows languages you're experienced with\n"
        "- Your PROJECTS list shows what you've built and what languages each uses\n"
        "- When asked about a language, mention specific projects that use it\n"
        "- When asked about projects using a language, look at === PROJECTS BY LANGUAGE ===\n"
        "- Never mention you are an AI\n"
        "- Be friendly and conversational"
    )


def build_general_context(profile: Profile, kb: KnowledgeBase) -> str:
    lines: List[str] = _profile_lines(profile)

    lines.append("")
    lines.append("=== LANGUAGE USAGE ===")
    if profile.language_stats:
        lines.append("By repo presence (not file size):")
        total_repos = len(profile.repositories)
        ranked = sorted(
            profile.language_stats.items(),
            key=lambda item: item[1].repos_using_language,
            reverse=True,
        )
        for lang, stat in ranked:
            count = stat.repos_using_language
            percent = count / total_repos * 100 if total_repos else 0.0
            lines.append(f"- {lang}: {percent:.0f}% ({count} repos)")

    lines.append("")
    lines.append("=== MY PROJECTS ===")
    recent = sorted(profile.repositories, key=lambda r: r.updated_at, reverse=True)
    for index, repo in enumerate(recent, 1):
        lines.append("")
        lines.append(f"{index}. {repo.name}")
        languages = repo_languages(repo)
        if languages:
            lines.append(f"   Languages: {languages}")
        if repo.description:
            lines.append(f"   Description: {repo.description}")

    lines.append("")
    lines.append("=== PROJECTS BY LANGUAGE ===")
    by_language = projects_by_language(profile.repositories)
    top = sorted(by_language.items(), key=lambda item: len(item[1]), reverse=True)
    for lang, projects in top[:MAX_LANGUAGES_BY_PROJECT]:
        shown = ", ".join(projects[:MAX_PROJECTS_PER_LANGUAGE])
        extra = len(projects) - MAX_PROJECTS_PER_LANGUAGE
        more = f" (+{extra} more)" if extra > 0 else ""
        lines.append(f"- {lang}: {shown}{more}")

    return "\n".join(lines) + "\n"


def build_detailed_context(profile: Profile, repo: Repository, kb: KnowledgeBase) -> str:
    lines: List[str] = _profile_lines(profile)

    lines.append("")
    lines.append(f"=== PROJECT: {repo.name} ===")
    languages = repo_languages(repo)
    if languages:
        lines.append(f"Languages: {languages}")
    if repo.description:
        lines.append(f"Description: {repo.description}")
    if repo.stars > 0:
        lines.append(f"Stars: {repo.stars}")

    summary = kb.summary_for(repo.name)
    if summary is not None:
        lines.append("")
        lines.append("## What I built:")
        lines.append(summary.ai_summary)

    return "\n".join(lines) + "\n"


def repo_languages(repo: Repository) -> str:
    """Languages of one repository by byte percentage, or its primary language."""
    if repo.languages:
        ranked = sorted(repo.languages.items(), key=lambda item: item[1].percentage, reverse=True)
        return ", ".join(lang for lang, _ in ranked)
    return repo.primary_language or ""


def projects_by_language(repositories: List[Repository]) -> Dict[str, List[str]]:
    index: Dict[str, List[str]] = {}
    for repo in repositories:
        if repo.languages:
            langs = list(repo.languages.keys())
        elif repo.primary_language:
            langs = [repo.primary_language]
        else:
            langs = []
        for lang in langs:
            index.setdefault(lang, []).append(repo.name)
    return index


def _profile_lines(profile: Profile) -> List[str]:
    lines = ["=== MY PROFILE ===", f"Name: {profile.display_name}"]
    if profile.bio:
        lines.append(f"Bio: {profile.bio}")
    lines.append(f"Public Repos: {profile.public_repos}")
    return lines
