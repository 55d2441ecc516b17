import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from candyrush.models import GameSession


logger = logging.getLogger(__name__)


class LeaderboardStore:
    """Score persistence and leaderboard reads backed by SQLAlchemy.

    Built once by the application factory and handed to the sessions that
    need it. Database failures are logged and reported as ``None`` / ``[]``
    so the game flow never stops on them.
    """

    def __init__(self, db):
        self.db = db

    def save_session(self, nickname: str, score, rounds_completed: int,
                     total_rounds: int) -> Optional[dict]:
        row = GameSession(
            player_nickname=nickname,
            total_score=score,
            rounds_completed=rounds_completed,
            total_rounds=total_rounds,
            completed_at=datetime.now(timezone.utc),
        )
        try:
            self.db.session.add(row)
            self.db.session.commit()
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            logger.error(f"[score-save] nickname={nickname} failed: {exc}")
            return None
        logger.info(f"[score-save] id={row.id} nickname={nickname} score={score}")
        return row.to_dict()

    def top_scores(self, limit: int = 10) -> List[dict]:
        try:
            rows = (
                GameSession.query
                .filter(GameSession.completed_at.isnot(None))
                .order_by(GameSession.total_score.desc(), GameSession.completed_at.asc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            logger.error(f"[leaderboard-error] limit={limit} {exc}")
            return []
        return [
            {
                'nickname': r.player_nickname,
                'score': r.total_score,
                'roundsCompleted': r.rounds_completed,
                'completedAt': r.completed_at.isoformat() if r.completed_at else None,
                'rank': idx + 1,
            }
            for idx, r in enumerate(rows)
        ]
