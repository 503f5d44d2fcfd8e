"""Fetches self-hosted challenges over HTTP for CustomChallengeProvider."""

import asyncio
from typing import Optional

import requests


class HttpChallengeLoader:
    """Async callable returning the JSON of ``GET {base_url}/captcha/challenge``."""

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = 5.0,
        path: str = '/captcha/challenge',
    ):
        self.url = base_url.rstrip('/') + path
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch(self) -> dict:
        response = self.session.get(self.url, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    async def __call__(self) -> dict:
        return await asyncio.to_thread(self.fetch)
