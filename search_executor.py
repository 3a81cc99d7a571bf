"""YouTube search driven through an embedded content surface."""

from __future__ import annotations

import logging
import time
from typing import Callable
from urllib.parse import parse_qs, quote, urlencode, urlsplit

from interfaces import ContentSurface

logger = logging.getLogger(__name__)

YOUTUBE_RESULTS_URL = "https://www.youtube.com/results"
FIRST_RESULT_SELECTOR = "ytd-video-renderer a#video-title"


def build_search_url(text: str, base_url: str = YOUTUBE_RESULTS_URL) -> str:
    return f"{base_url}?{urlencode({'search_query': text.strip()}, quote_via=quote)}"


def same_results_page(current: str, expected: str) -> bool:
    """True when ``current`` shows the results for the query in ``expected``.

    Extra query parameters added by the site (filters, tracking) are ignored.
    """
    cur, exp = urlsplit(current), urlsplit(expected)
    if (cur.netloc, cur.path.rstrip("/")) != (exp.netloc, exp.path.rstrip("/")):
        return False
    return parse_qs(cur.query).get("search_query") == parse_qs(exp.query).get("search_query")


class SearchExecutor:
    def __init__(
        self,
        surface: ContentSurface,
        max_attempts: int = 20,
        interval_s: float = 0.5,
        selector: str = FIRST_RESULT_SELECTOR,
        base_url: str = YOUTUBE_RESULTS_URL,
        load_timeout_s: float = 15.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._surface = surface
        self._max_attempts = max_attempts
        self._interval_s = interval_s
        self._selector = selector
        self._base_url = base_url
        self._load_checks = max(1, int(load_timeout_s / interval_s))
        self._sleep = sleep

    def search(self, text: str) -> bool:
        """Load the results page and click the first result once it appears.

        Polling starts only after the new page has finished loading, so a
        result left over from the previous page is never clicked. Gives up
        quietly after ``max_attempts`` polls and returns False.
        """
        if not text.strip():
            return False
        url = build_search_url(text, self._base_url)
        logger.info("Loading %s", url)
        self._surface.load(url)

        if not self._wait_for_page():
            logger.info("Results page did not finish loading: %s", url)
            return False

        for attempt in range(1, self._max_attempts + 1):
            if self._try_click():
                logger.info("Opened first result after %d attempt(s)", attempt)
                return True
            if attempt < self._max_attempts:
                self._sleep(self._interval_s)
        logger.info("No result element after %d attempts", self._max_attempts)
        return False

    def __call__(self, text: str) -> bool:
        return self.search(text)

    def _wait_for_page(self) -> bool:
        for check in range(1, self._load_checks + 1):
            if self._surface.page_loaded():
                return True
            if check < self._load_checks:
                self._sleep(self._interval_s)
        return False

    def _try_click(self) -> bool:
        try:
            return bool(self._surface.click_first(self._selector))
        except Exception as exc:
            logger.debug("Result click failed: %s", exc)
            return False
