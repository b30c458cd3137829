from datetime import datetime, timezone
from app import db, bcrypt
from flask_login import UserMixin


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    scores = db.relationship('GameScore', back_populates='user', lazy='dynamic')

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
        }


class GameScore(db.Model):
    """One finished play. Every submission is kept for stats and leaderboards."""
    __tablename__ = 'game_score'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    game_name = db.Column(db.String(32), nullable=False, index=True)
    score = db.Column(db.Integer, nullable=False, default=0)
    level_reached = db.Column(db.Integer, nullable=True)
    time_taken = db.Column(db.Integer, nullable=True)  # ms
    completed_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    user = db.relationship('User', back_populates='scores')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'game_name': self.game_name,
            'score': self.score,
            'level_reached': self.level_reached,
            'time_taken': self.time_taken,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }


class HighScore(db.Model):
    """Best score per (user, game). Only ever raised, never lowered."""
    __tablename__ = 'high_score'
    __table_args__ = (db.UniqueConstraint('user_id', 'game_name', name='uq_high_score_user_game'),)
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    game_name = db.Column(db.String(32), nullable=False)
    best_score = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'game_name': self.game_name,
            'best_score': self.best_score,
        }


class Achievement(db.Model):
    """Catalog of badges a player can unlock."""
    __tablename__ = 'achievement'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), unique=True, nullable=False)
    description = db.Column(db.String(255), nullable=False, default='')
    badge_icon = db.Column(db.String(16), nullable=True)
    category = db.Column(db.String(32), nullable=False, default='arcade')

    def to_dict(self):
        return {
            'name': self.name,
            'description': self.description,
            'badge_icon': self.badge_icon,
            'category': self.category,
        }


class UserAchievement(db.Model):
    __tablename__ = 'user_achievement'
    __table_args__ = (db.UniqueConstraint('user_id', 'achievement_id', name='uq_user_achievement'),)
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    achievement_id = db.Column(db.Integer, db.ForeignKey('achievement.id'), nullable=False)
    unlocked_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    achievement = db.relationship('Achievement')

    def to_dict(self):
        return {
            'id': self.id,
            'achievement_id': self.achievement_id,
            'unlocked_at': self.unlocked_at.isoformat() if self.unlocked_at else None,
            'achievement': self.achievement.to_dict() if self.achievement else None,
        }
