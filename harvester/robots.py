"""robots.txt policy for the harvested site."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

import httpx

LOGGER = logging.getLogger(__name__)


class RobotsPolicy:
    """Answers whether a URL may be fetched under the site's robots.txt."""

    def __init__(self, user_agent: str = "*", parser: Optional[RobotFileParser] = None):
        self.user_agent = user_agent
        self._parser = parser

    @classmethod
    def from_text(cls, text: str, user_agent: str = "*") -> "RobotsPolicy":
        parser = RobotFileParser()
        parser.parse(text.splitlines())
        return cls(user_agent, parser)

    @classmethod
    def allow_all(cls, user_agent: str = "*") -> "RobotsPolicy":
        return cls(user_agent, None)

    def is_allowed(self, url: str) -> bool:
        if self._parser is None:
            return True
        return self._parser.can_fetch(self.user_agent, url)


def robots_url_for(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}/robots.txt"


async def load_robots_policy(
    start_url: str,
    *,
    user_agent: str = "*",
    timeout: float = 10.0,
    client: Optional[httpx.AsyncClient] = None,
) -> RobotsPolicy:
    """Fetch and parse robots.txt for the start URL's origin.

    A missing or unreachable robots.txt allows everything.
    """
    robots_url = robots_url_for(start_url)
    owns_client = client is None
    http = client or httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers={"User-Agent": user_agent},
    )
    try:
        response = await http.get(robots_url)
    except httpx.HTTPError as exc:
        LOGGER.debug("robots.txt unavailable at %s: %s", robots_url, exc)
        return RobotsPolicy.allow_all(user_agent)
    finally:
        if owns_client:
            await http.aclose()

    if response.status_code != 200:
        LOGGER.debug("robots.txt at %s returned %d", robots_url, response.status_code)
        return RobotsPolicy.allow_all(user_agent)

    LOGGER.debug("Loaded robots.txt from %s", robots_url)
    return RobotsPolicy.from_text(response.text, user_agent)
