"""Latest-release lookup for configured tools (informational only)."""

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"


class GitHubReleases:
    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.session = session or requests.Session()
        self.timeout = timeout

    def latest_tag(self, repo: str) -> Optional[str]:
        """Return the tag of ``repo``'s latest release, or None on any failure."""
        if not repo:
            return None
        url = f"{GITHUB_API}/repos/{repo}/releases/latest"
        try:
            response = self.session.get(
                url,
                timeout=self.timeout,
                headers={"Accept": "application/vnd.github+json"},
            )
            response.raise_for_status()
            return response.json().get("tag_name")
        except (requests.RequestException, ValueError) as e:
            logger.debug(f"Latest release lookup for {repo} failed: {e}")
            return None
