"""Promoto — Expiration Sweeper.

Pauses the Meta ads of posts whose promotion window has ended and marks the
posts EXPIRED. Each post is handled on its own: one failure is recorded and
the sweep moves on. If the due posts cannot even be loaded the sweep
reports a job error instead of raising.
"""

import time
from datetime import date, datetime, timezone

from sqlmodel import Session, select

from promoto.connectors.meta.client import PAUSED, MetaClient
from promoto.core.cache import POSTS, cache
from promoto.core.logging import get_logger
from promoto.models.entities import Post, PostStatus
from promoto.models.schemas import SweepResult

logger = get_logger("services.expiration")


class ExpirationSweeper:
    def __init__(self, session: Session, client: MetaClient):
        self.session = session
        self.client = client

    def due_posts(self, today: date) -> list[Post]:
        return list(
            self.session.exec(
                select(Post).where(
                    Post.status == PostStatus.ACTIVE.value,
                    Post.promotion_end_date <= today,  # type: ignore
                )
            ).all()
        )

    async def _expire(self, post: Post) -> None:
        if post.meta_ad_id:
            await self.client.set_status(post.meta_ad_id, PAUSED)
        post.status = PostStatus.EXPIRED.value
        post.updated_at = datetime.now(timezone.utc)
        self.session.add(post)
        self.session.commit()

    async def sweep(self, today: date | None = None) -> SweepResult:
        today = today or datetime.now(timezone.utc).date()
        started = time.monotonic()
        try:
            posts = self.due_posts(today)
        except Exception as e:
            self.session.rollback()
            logger.error(f"Expiration sweep could not load due posts: {e}")
            return SweepResult(errors=[f"Job error: {e}"])
        result = SweepResult(total=len(posts))
        logger.info(f"Expiration sweep: {len(posts)} post(s) due on {today}")

        for post in posts:
            post_id, external_id = post.id, post.external_post_id
            try:
                await self._expire(post)
                result.success += 1
            except Exception as e:
                self.session.rollback()
                result.failed += 1
                result.errors.append(f"{external_id}: {e}")
                logger.error(f"Failed to expire post {external_id}: {e}", extra={"post_id": post_id})

        if result.success:
            cache.invalidate(POSTS)
        logger.info(
            f"Expiration sweep done: {result.success} expired, {result.failed} failed",
            extra={"duration_ms": round((time.monotonic() - started) * 1000)},
        )
        return result
