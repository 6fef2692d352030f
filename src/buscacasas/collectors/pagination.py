"""Result-page pagination.

Advances a rendering session to the next results page by clicking the
source's "next" control. Running out of pages, a missing control and a
navigation timeout all simply end pagination; none of them is an error.
"""

import asyncio
import logging
from typing import Optional, Sequence

from .session import RenderingSession

logger = logging.getLogger(__name__)


class PaginationDriver:
    """Tracks the current page and moves to the next one on request.

    Attributes:
        current_page: 1-based number of the page the session is on
        max_pages: Hard cap on pages visited
        stop_reason: Why the last advance() failed ("limit", "no_next", "timeout")
    """

    def __init__(
        self,
        session: RenderingSession,
        next_selectors: Sequence[str],
        max_pages: int,
        timeout: float = 15.0,
        delay: float = 3.0,
    ):
        """Initialize the driver.

        Args:
            session: Session to paginate (the driver does not own it)
            next_selectors: Ordered candidates for an enabled "next" control
            max_pages: Maximum number of pages to visit (>= 1)
            timeout: Seconds to wait for the next page to load
            delay: Politeness delay in seconds after each page transition
        """
        self.session = session
        self.next_selectors = tuple(next_selectors)
        self.max_pages = max(1, max_pages)
        self.timeout = timeout
        self.delay = delay
        self.current_page = 1
        self.stop_reason: Optional[str] = None

    @property
    def at_limit(self) -> bool:
        return self.current_page >= self.max_pages

    async def find_next(self) -> Optional[str]:
        """Return the first selector matching an enabled "next" control."""
        for selector in self.next_selectors:
            if await self.session.is_clickable(selector):
                return selector
        return None

    async def advance(self) -> bool:
        """Move to the next page.

        Returns:
            True if the session is now on the next page, False when there
            are no more pages to visit
        """
        if self.at_limit:
            logger.debug(f"[{self.session.source}] Reached max pages ({self.max_pages})")
            self.stop_reason = "limit"
            return False

        selector = await self.find_next()
        if selector is None:
            logger.info(f"[{self.session.source}] No more pages available")
            self.stop_reason = "no_next"
            return False

        if not await self.session.click_and_wait(selector, self.timeout):
            logger.info(f"[{self.session.source}] Next page did not load, stopping")
            self.stop_reason = "timeout"
            return False

        self.current_page += 1
        if self.delay > 0:
            await asyncio.sleep(self.delay)
        return True
