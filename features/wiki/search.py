"""
MediaWiki opensearch client for the community wiki.
"""

import os
import logging
from dataclasses import dataclass

import requests

logger = logging.getLogger(__name__)

DEFAULT_WIKI_API_URL = "https://wiki.tppc.info/api.php"
USER_AGENT = "community-command-bot/1.0 (chat bot)"


@dataclass
class WikiResult:
    title: str
    link: str


def search_wiki(query: str, limit: int = 5) -> list[WikiResult]:
    """
    Search wiki page titles.

    Args:
        query: Search text
        limit: Maximum number of results

    Returns:
        Matching pages in the wiki's ranking order (empty on any failure)
    """
    q = (query or "").strip()
    if not q:
        return []

    endpoint = os.getenv("WIKI_API_URL", DEFAULT_WIKI_API_URL)
    params = {
        "action": "opensearch",
        "search": q,
        "limit": str(limit),
        "namespace": "0",
        "format": "json",
    }

    try:
        resp = requests.get(
            endpoint,
            params=params,
            headers={"User-Agent": USER_AGENT},
            timeout=10,
        )
        resp.raise_for_status()
        data = resp.json()
    except requests.exceptions.RequestException as e:
        logger.warning(f"Wiki search failed for {q!r}: {e}")
        return []
    except ValueError as e:
        logger.warning(f"Wiki returned invalid JSON for {q!r}: {e}")
        return []

    # OpenSearch format: [searchterm, titles[], descriptions[], urls[]]
    titles = data[1] if isinstance(data, list) and len(data) > 1 and isinstance(data[1], list) else []
    urls = data[3] if isinstance(data, list) and len(data) > 3 and isinstance(data[3], list) else []

    results = []
    for title, link in zip(titles, urls):
        if isinstance(title, str) and isinstance(link, str) and link.startswith("http"):
            results.append(WikiResult(title=title, link=link))
    return results
