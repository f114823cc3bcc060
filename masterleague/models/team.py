from datetime import datetime, timezone

from masterleague import db


class Team(db.Model):
    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)

    # External ID for API integration (football-data.org team id)
    external_id = db.Column(db.Integer, unique=True, nullable=False, index=True)

    # Team identification
    name = db.Column(db.String(100), nullable=False)
    short_name = db.Column(db.String(50))
    tla = db.Column(db.String(5), index=True)  # Three-letter abbreviation

    logo_url = db.Column(db.String(500))

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    home_fixtures = db.relationship(
        "Fixture",
        foreign_keys="Fixture.home_team_id",
        backref=db.backref("home_team", lazy="joined"),
        lazy="dynamic",
    )
    away_fixtures = db.relationship(
        "Fixture",
        foreign_keys="Fixture.away_team_id",
        backref=db.backref("away_team", lazy="joined"),
        lazy="dynamic",
    )

    def __repr__(self):
        return f"<Team {self.name}>"

    @property
    def display_name(self):
        """Return the short name when the API provides one"""
        return self.short_name or self.name

    @staticmethod
    def get_by_external_id(external_id):
        return Team.query.filter_by(external_id=external_id).first()

    @staticmethod
    def get_all():
        return Team.query.order_by(Team.name).all()

    def to_dict(self):
        """Convert team to dictionary for API responses"""
        return {
            "id": self.id,
            "external_id": self.external_id,
            "name": self.name,
            "short_name": self.display_name,
            "tla": self.tla,
            "logo_url": self.logo_url,
        }
