from datetime import datetime, timezone

from masterleague import db


GLOBAL_SCOPE = "global"


def scope_key_for(group_id):
    """Scope key: 'global', or 'group:<id>' for a group"""
    return GLOBAL_SCOPE if group_id is None else f"group:{group_id}"


def _scope_query(model, group_id, season_id):
    return model.query.filter(
        model.season_id == season_id, model.scope_key == scope_key_for(group_id)
    )


class LeaderboardEntry(db.Model):
    """
    One user's standing within a scope (a group, or global when group_id is
    NULL) for a season. Rows are derived data and rebuilt wholesale per scope.

    scope_key is never NULL, so uniqueness per (user, scope, season) holds for
    the global scope too.
    """

    __tablename__ = "leaderboard_entries"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    group_id = db.Column(db.Integer, db.ForeignKey("groups.id"), nullable=True)
    scope_key = db.Column(db.String(32), nullable=False)
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False)

    total_points = db.Column(db.Integer, nullable=False, default=0)
    correct_scorelines = db.Column(db.Integer, nullable=False, default=0)
    correct_outcomes = db.Column(db.Integer, nullable=False, default=0)
    predicted_fixtures = db.Column(db.Integer, nullable=False, default=0)
    completed_fixtures = db.Column(db.Integer, nullable=False, default=0)
    rank = db.Column(db.Integer, nullable=False)

    last_updated = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    user = db.relationship("User")

    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "scope_key", "season_id", name="uq_leaderboard_user_scope_season"
        ),
        db.Index("idx_leaderboard_scope", "season_id", "scope_key"),
        db.Index("idx_leaderboard_user", "user_id"),
    )

    def __repr__(self):
        return f"<LeaderboardEntry user_id={self.user_id} rank={self.rank} points={self.total_points}>"

    @staticmethod
    def for_scope(group_id, season_id):
        """Query for the rows of one scope"""
        return _scope_query(LeaderboardEntry, group_id, season_id)

    def to_dict(self):
        return {
            "rank": self.rank,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "display_name": self.user.full_name if self.user else None,
            "total_points": self.total_points,
            "correct_scorelines": self.correct_scorelines,
            "correct_outcomes": self.correct_outcomes,
            "predicted_fixtures": self.predicted_fixtures,
            "completed_fixtures": self.completed_fixtures,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


class LeaderboardMeta(db.Model):
    __tablename__ = "leaderboard_meta"

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey("groups.id"), nullable=True)
    scope_key = db.Column(db.String(32), nullable=False)
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False)

    total_matches = db.Column(db.Integer, default=0)
    finished_matches = db.Column(db.Integer, default=0)
    users_ranked = db.Column(db.Integer, default=0)
    last_game_time = db.Column(db.DateTime(timezone=True))
    last_recalculated_at = db.Column(db.DateTime(timezone=True))

    __table_args__ = (
        db.UniqueConstraint("scope_key", "season_id", name="uq_leaderboard_meta_scope_season"),
    )

    def __repr__(self):
        return f"<LeaderboardMeta group_id={self.group_id} season_id={self.season_id}>"

    @staticmethod
    def get_for_scope(group_id, season_id):
        return _scope_query(LeaderboardMeta, group_id, season_id).first()

    @staticmethod
    def lock_for_scope(group_id, season_id):
        """The scope's meta row, locked until the transaction ends (SELECT ... FOR UPDATE)"""
        return _scope_query(LeaderboardMeta, group_id, season_id).with_for_update().first()

    def to_dict(self):
        from masterleague.utils.timezone_utils import ensure_utc

        return {
            "group_id": self.group_id,
            "season_id": self.season_id,
            "total_matches": self.total_matches,
            "finished_matches": self.finished_matches,
            "users_ranked": self.users_ranked,
            "last_game_time": (
                ensure_utc(self.last_game_time).isoformat()
                if self.last_game_time
                else None
            ),
            "last_recalculated_at": (
                ensure_utc(self.last_recalculated_at).isoformat()
                if self.last_recalculated_at
                else None
            ),
        }
