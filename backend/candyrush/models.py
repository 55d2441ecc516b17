from datetime import datetime, timezone

from candyrush import db


def _utcnow():
    return datetime.now(timezone.utc)


class GameSession(db.Model):
    __tablename__ = 'game_session'
    id = db.Column(db.Integer, primary_key=True)
    player_nickname = db.Column(db.String(50), nullable=False)
    total_score = db.Column(db.Float, nullable=False, default=0)
    rounds_completed = db.Column(db.Integer, nullable=False, default=0)
    total_rounds = db.Column(db.Integer, nullable=False, default=0)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'player_nickname': self.player_nickname,
            'total_score': self.total_score,
            'rounds_completed': self.rounds_completed,
            'total_rounds': self.total_rounds,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }
