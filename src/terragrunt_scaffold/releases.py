#!/usr/bin/env python3
"""
Release Lookup

Looks up the most recent release tag of a GitHub (or GitHub Enterprise)
repository through the REST API.
"""

import logging
from typing import Optional

import requests

from .errors import ReleaseLookupError

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_HOST = "github.com"


class GitHubReleaseLookup:
    """Latest release lookup backed by the GitHub REST API"""

    def __init__(self, token: Optional[str] = None, api_url: str = GITHUB_API_URL,
                 timeout: int = 10, session: Optional[requests.Session] = None):
        """
        Initialize the lookup

        Args:
            token: Default bearer token, used when no credential is passed
            api_url: API base URL for github.com repositories
            timeout: Request timeout in seconds
            session: Optional requests session to reuse
        """
        self.token = token
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def api_base_for(self, host: str) -> str:
        if not host or host == GITHUB_HOST or host == f"www.{GITHUB_HOST}":
            return self.api_url
        return f"https://{host}/api/v3"

    def latest_tag(self, host: str, owner: str, repo: str, credential: Optional[str] = None) -> str:
        """
        Return the tag name of the latest release

        Args:
            host: Repository host
            owner: Repository owner
            repo: Repository name
            credential: Bearer token overriding the default token

        Returns:
            Tag name of the latest release

        Raises:
            ReleaseLookupError: if the release cannot be determined
        """
        url = f"{self.api_base_for(host)}/repos/{owner}/{repo}/releases/latest"
        headers = {'Accept': 'application/vnd.github+json'}
        token = credential or self.token
        if token:
            headers['Authorization'] = f"Bearer {token}"

        logger.debug(f"Looking up latest release: {url}")
        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            raise ReleaseLookupError(f"Failed to query {url}: {str(e)}") from e
        except ValueError as e:
            raise ReleaseLookupError(f"Invalid response from {url}: {str(e)}") from e

        tag = payload.get('tag_name') if isinstance(payload, dict) else None
        if not tag:
            raise ReleaseLookupError(f"No tag name in latest release of {owner}/{repo}")
        return tag
