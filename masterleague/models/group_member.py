"""
A user's seat in a private league group.

Seats are never deleted. Leaving only marks the seat inactive and joining
again reuses it, so a group's leaderboard scope is exactly its active seats.
"""

from datetime import datetime, timezone

from masterleague import db
from masterleague.utils.timezone_utils import ensure_utc


def _utcnow():
    return datetime.now(timezone.utc)


class GroupMember(db.Model):
    __tablename__ = "group_members"

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey("groups.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    joined_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    left_at = db.Column(db.DateTime(timezone=True))

    __table_args__ = (
        db.UniqueConstraint("group_id", "user_id", name="uq_group_member_seat"),
        db.Index("idx_group_member_scope", "group_id", "is_active"),
        db.Index("idx_group_member_user", "user_id", "is_active"),
    )

    def __repr__(self):
        state = "active" if self.is_active else "left"
        return f"<GroupMember group_id={self.group_id} user_id={self.user_id} {state}>"

    def leave(self, now=None):
        """Give up the seat; group admin rights are not kept for a later rejoin"""
        self.is_active = False
        self.is_admin = False
        self.left_at = now or _utcnow()

    def rejoin(self, now=None):
        self.is_active = True
        self.left_at = None
        self.joined_at = now or _utcnow()

    def to_dict(self):
        user = self.user
        return {
            "user_id": self.user_id,
            "group_id": self.group_id,
            "username": user.username if user else None,
            "display_name": user.full_name if user else None,
            "is_admin": self.is_admin,
            "joined_at": ensure_utc(self.joined_at).isoformat() if self.joined_at else None,
        }
