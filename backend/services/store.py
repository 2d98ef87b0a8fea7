"""System-of-record access: accounts, synced Instagram rows, Wrapped reports.

Synchronous SQLAlchemy; async handlers call into it with asyncio.to_thread.
Sync writes are idempotent upserts keyed by the platform's natural IDs, so
re-running a sync never duplicates rows.
"""

import logging
from datetime import date, datetime, timezone

from sqlalchemy import create_engine, select, text
from sqlalchemy.orm import sessionmaker

from models import (
    AppUser,
    Base,
    IgAccount,
    IgDemographic,
    IgInsightDaily,
    IgMedia,
    IgStory,
    OAuthSession,
    WrappedReport,
)

logger = logging.getLogger(__name__)


class Store:
    def __init__(self, database_url: str):
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine = create_engine(database_url, connect_args=connect_args)
        self._sessions = sessionmaker(self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Database ping failed: %s", e)
            return False

    # -- Users, OAuth, accounts ---------------------------------------------

    def get_user(self, user_id: str) -> AppUser | None:
        with self._sessions() as session:
            return session.get(AppUser, user_id)

    def upsert_user(self, email: str, name: str) -> AppUser:
        with self._sessions.begin() as session:
            user = session.scalar(select(AppUser).where(AppUser.email == email))
            if user is None:
                user = AppUser(email=email, name=name)
                session.add(user)
            else:
                user.name = name
            session.flush()
            return user

    def create_oauth_session(self, state: str, redirect_uri: str) -> None:
        with self._sessions.begin() as session:
            session.add(OAuthSession(state=state, redirect_uri=redirect_uri))

    def get_oauth_session(self, state: str) -> OAuthSession | None:
        with self._sessions() as session:
            return session.scalar(select(OAuthSession).where(OAuthSession.state == state))

    def consume_oauth_session(self, state: str, user_id: str) -> None:
        with self._sessions.begin() as session:
            oauth = session.scalar(select(OAuthSession).where(OAuthSession.state == state))
            if oauth is not None:
                oauth.consumed_at = datetime.now(timezone.utc)
                oauth.user_id = user_id

    def get_account_for_user(self, user_id: str) -> IgAccount | None:
        """Oldest linked Instagram account for an app user."""
        with self._sessions() as session:
            return session.scalar(
                select(IgAccount)
                .where(IgAccount.user_id == user_id)
                .order_by(IgAccount.created_at.asc())
                .limit(1)
            )

    def upsert_account(
        self,
        user_id: str,
        instagram_user_id: str,
        username: str,
        access_token: str | None,
        long_lived_token: str | None,
        token_expires_at: datetime | None = None,
    ) -> IgAccount:
        with self._sessions.begin() as session:
            account = session.scalar(
                select(IgAccount).where(IgAccount.instagram_user_id == instagram_user_id)
            )
            if account is None:
                account = IgAccount(instagram_user_id=instagram_user_id)
                session.add(account)
            account.user_id = user_id
            account.username = username
            account.access_token = access_token
            account.long_lived_token = long_lived_token
            account.token_expires_at = token_expires_at
            session.flush()
            return account

    # -- Synced resources ---------------------------------------------------

    def upsert_media(self, account_id: str, items: list[dict]) -> int:
        with self._sessions.begin() as session:
            for item in items:
                row = session.scalar(select(IgMedia).where(IgMedia.media_id == item["id"]))
                if row is None:
                    row = IgMedia(
                        ig_account_id=account_id,
                        media_id=item["id"],
                        media_type=item.get("media_type"),
                        permalink=item.get("permalink"),
                        timestamp=parse_timestamp(item.get("timestamp")),
                    )
                    session.add(row)
                row.caption = item.get("caption")
                row.media_url = item.get("media_url")
                row.like_count = item.get("like_count") or 0
                row.comments_count = item.get("comments_count") or 0
                insights = item.get("insights") or {}
                row.impressions = insights.get("impressions", 0)
                row.reach = insights.get("reach", 0)
                row.saved = insights.get("saved", 0)
                row.engagement = insights.get("engagement", 0)
        return len(items)

    def upsert_stories(self, account_id: str, items: list[dict]) -> int:
        with self._sessions.begin() as session:
            for item in items:
                row = session.scalar(select(IgStory).where(IgStory.story_id == item["id"]))
                if row is None:
                    row = IgStory(
                        ig_account_id=account_id,
                        story_id=item["id"],
                        media_type=item.get("media_type"),
                        timestamp=parse_timestamp(item.get("timestamp")),
                    )
                    session.add(row)
                row.media_url = item.get("media_url")
                insights = item.get("insights") or {}
                row.impressions = insights.get("impressions", 0)
                row.reach = insights.get("reach", 0)
                row.replies = insights.get("replies", 0)
                row.exits = insights.get("exits", 0)
        return len(items)

    def upsert_daily_insights(self, account_id: str, rows: list[dict]) -> int:
        with self._sessions.begin() as session:
            for item in rows:
                day = date.fromisoformat(str(item["date"])[:10])
                row = session.scalar(
                    select(IgInsightDaily).where(
                        IgInsightDaily.ig_account_id == account_id,
                        IgInsightDaily.date == day,
                    )
                )
                if row is None:
                    row = IgInsightDaily(ig_account_id=account_id, date=day)
                    session.add(row)
                row.impressions = item.get("impressions", 0)
                row.reach = item.get("reach", 0)
                row.profile_views = item.get("profile_views", 0)
                row.follower_count = item.get("follower_count", 0)
        return len(rows)

    def upsert_demographics(self, account_id: str, demographics: dict) -> int:
        count = 0
        with self._sessions.begin() as session:
            for dimension, buckets in demographics.items():
                for key, value in buckets.items():
                    row = session.scalar(
                        select(IgDemographic).where(
                            IgDemographic.ig_account_id == account_id,
                            IgDemographic.dimension == dimension,
                            IgDemographic.key == key,
                        )
                    )
                    if row is None:
                        row = IgDemographic(ig_account_id=account_id, dimension=dimension, key=key)
                        session.add(row)
                    row.value = int(value)
                    count += 1
        return count

    def list_media(self, account_id: str) -> list[IgMedia]:
        with self._sessions() as session:
            return list(session.scalars(select(IgMedia).where(IgMedia.ig_account_id == account_id)))

    def list_daily_insights(self, account_id: str) -> list[IgInsightDaily]:
        with self._sessions() as session:
            return list(
                session.scalars(
                    select(IgInsightDaily).where(IgInsightDaily.ig_account_id == account_id)
                )
            )

    # -- Wrapped reports ----------------------------------------------------

    def get_report(self, user_id: str, year: int) -> WrappedReport | None:
        with self._sessions() as session:
            return session.scalar(
                select(WrappedReport).where(
                    WrappedReport.user_id == user_id, WrappedReport.year == year
                )
            )

    def upsert_report(
        self,
        user_id: str,
        year: int,
        title: str,
        summary: str,
        slides: list[dict],
        ai_image_ref: str | None,
    ) -> WrappedReport:
        with self._sessions.begin() as session:
            report = session.scalar(
                select(WrappedReport).where(
                    WrappedReport.user_id == user_id, WrappedReport.year == year
                )
            )
            if report is None:
                report = WrappedReport(user_id=user_id, year=year)
                session.add(report)
            report.title = title
            report.summary = summary
            report.slides_json = slides
            report.ai_image_ref = ai_image_ref
            session.flush()
            return report


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse Graph API timestamps ("2025-01-31T10:00:00+0000") and ISO strings.

    Unparseable values come from upstream, not the caller; they are logged and
    stored as None.
    """
    if not value:
        return None
    raw = value
    if len(value) > 5 and value[-5] in "+-" and value[-4:].isdigit():
        value = f"{value[:-2]}:{value[-2:]}"
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        logger.warning("Unparseable Instagram timestamp %r, storing None", raw)
        return None
