"""Identity/profile evidence tool."""

import re
from typing import Optional

from cache import CacheStore
from shared_types import ToolName
from xapi import User, XClient

from .base import Candidate, EvidenceTool, ToolFailure, ToolResult

_HANDLE = re.compile(r"@(\w{1,15})")
_WHO_PREFIX = re.compile(r"^\s*(who\s+is|who's|whos|who\s+are|tell\s+me\s+about)\s+", re.IGNORECASE)


def extract_subject(query: str) -> str:
    """The name being asked about: 'who is alex chen?' -> 'alex chen'."""
    subject = _WHO_PREFIX.sub("", query)
    subject = re.sub(r"[?!.,]+", " ", subject)
    return re.sub(r"\s+", " ", subject).strip()


def profile_facts(user: User) -> list[str]:
    facts = []
    summary = f"@{user.username} goes by {user.name}" if user.name else f"@{user.username}"
    if user.description:
        summary += f", bio: {user.description[:160]}"
    facts.append(summary)
    facts.append(f"@{user.username} has {user.followers_count:,} followers")
    if user.verified:
        facts.append(f"@{user.username} is verified")
    if user.created_at:
        facts.append(f"@{user.username} joined in {user.created_at.year}")
    return facts


class ProfileLookupTool(EvidenceTool):
    """Resolves a handle or a person's name to X profiles.

    A bare name matching several accounts' display names equally well is
    reported as candidates rather than guessed.
    """

    name = ToolName.PROFILE_LOOKUP
    default_timeout = 15.0

    def __init__(
        self,
        client: XClient,
        max_candidates: int = 4,
        cache: Optional[CacheStore] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(cache=cache, timeout=timeout)
        self.client = client
        self.max_candidates = max_candidates

    async def _fetch(self, query: str) -> ToolResult:
        handle = _HANDLE.search(query)
        if handle:
            user = await self.client.get_user_by_username(handle.group(1))
            return ToolResult(facts=profile_facts(user), sources=[f"https://x.com/{user.username}"])

        subject = extract_subject(query)
        if not subject:
            raise ToolFailure(f"No subject in {query!r}")
        return await self._lookup_name(subject)

    async def _lookup_name(self, subject: str) -> ToolResult:
        _, users = await self.client.search_recent_with_users(f'"{subject}"', max_results=20)
        wanted = subject.lower()
        compact = wanted.replace(" ", "")
        matches = [
            u for u in users.values()
            if u.name.lower() == wanted or u.username.lower() == compact
        ]
        matches.sort(key=lambda u: u.followers_count, reverse=True)

        if not matches:
            return ToolResult()
        if len(matches) == 1:
            user = matches[0]
            return ToolResult(facts=profile_facts(user), sources=[f"https://x.com/{user.username}"])

        candidates = [
            Candidate(
                name=u.name or u.username,
                description=f"@{u.username}" + (f", {u.description[:60]}" if u.description else ""),
                handle=u.username,
            )
            for u in matches[: self.max_candidates]
        ]
        return ToolResult(
            candidates=candidates,
            sources=[f"https://x.com/{u.username}" for u in matches[: self.max_candidates]],
        )
