import secrets
from datetime import datetime, timezone

from masterleague import db


class Group(db.Model):
    """A private league; its leaderboard ranks only its active members"""

    __tablename__ = "groups"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)

    # Group settings
    is_active = db.Column(db.Boolean, default=True)
    max_members = db.Column(db.Integer, default=50)

    # Group code for easy joining
    invite_code = db.Column(db.String(8), unique=True, nullable=False, index=True)

    # Creator and timestamps
    creator_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    members = db.relationship(
        "GroupMember", backref="group", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("idx_group_creator", "creator_id"),
        db.Index("idx_group_active", "is_active"),
    )

    def __repr__(self):
        return f"<Group {self.name}>"

    def __init__(self, **kwargs):
        super(Group, self).__init__(**kwargs)
        if not self.invite_code:
            self.invite_code = self.generate_invite_code()

    @staticmethod
    def generate_invite_code():
        """Generate a unique 8-character invite code"""
        while True:
            code = secrets.token_urlsafe(6)[:8].upper()
            if not Group.query.filter_by(invite_code=code).first():
                return code

    @staticmethod
    def get_by_invite_code(code):
        return Group.query.filter_by(
            invite_code=(code or "").strip().upper(), is_active=True
        ).first()

    def get_active_member_ids(self):
        """User ids of active members, in ascending order"""
        from .group_member import GroupMember

        rows = (
            db.session.query(GroupMember.user_id)
            .filter_by(group_id=self.id, is_active=True)
            .order_by(GroupMember.user_id)
            .all()
        )
        return [row[0] for row in rows]

    def get_member_count(self):
        """Get count of active members"""
        return self.members.filter_by(is_active=True).count()

    def is_full(self):
        """Check if group has reached maximum capacity"""
        return self.get_member_count() >= self.max_members

    def is_user_member(self, user_id):
        """Check if user is an active member"""
        return (
            self.members.filter_by(user_id=user_id, is_active=True).first() is not None
        )

    def is_user_admin(self, user_id):
        """Check if user is an admin of this group"""
        member = self.members.filter_by(user_id=user_id, is_active=True).first()
        return bool(member and member.is_admin)

    def add_member(self, user, is_admin=False):
        """Add a user to the group"""
        from .group_member import GroupMember

        existing = self.members.filter_by(user_id=user.id).first()
        if existing:
            if existing.is_active:
                return False, "User is already a member"
            if self.is_full():
                return False, "Group is full"
            existing.rejoin()
            return True, "Membership reactivated"

        if self.is_full():
            return False, "Group is full"

        membership = GroupMember(user_id=user.id, group_id=self.id, is_admin=is_admin)
        db.session.add(membership)
        return True, "User added successfully"

    def remove_member(self, user_id):
        """Remove a user from the group"""
        member = self.members.filter_by(user_id=user_id, is_active=True).first()
        if member:
            member.leave()
            return True, "User removed successfully"
        return False, "User is not a member"

    def to_dict(self, include_members=False):
        """Convert group to dictionary for API responses"""
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "invite_code": self.invite_code,
            "member_count": self.get_member_count(),
            "max_members": self.max_members,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "creator": self.creator.username if self.creator else None,
        }

        if include_members:
            data["members"] = [
                member.to_dict() for member in self.members.filter_by(is_active=True)
            ]

        return data
