from datetime import datetime, timezone

from pickpool import db


class PickSetPreference(db.Model):
    """Admin override pinning the authoritative pick set source"""

    __tablename__ = "pick_set_preferences"

    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(
        db.Integer, db.ForeignKey("participants.id"), nullable=False
    )
    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=True)  # NULL applies to the whole season

    # A source discriminator, or a source kind ('authenticated', 'anonymous')
    preferred_discriminator = db.Column(db.String(255), nullable=False)

    # Admin tracking
    set_by_admin = db.Column(db.String(100), nullable=False)
    reasoning = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint(
            "participant_id", "season", "week", name="unique_pick_set_preference"
        ),
        db.Index("idx_pick_set_preference_season", "season", "week"),
    )

    def __repr__(self):
        scope = f"W{self.week}" if self.week is not None else "season"
        return f"<PickSetPreference participant={self.participant_id} {self.season}/{scope} -> {self.preferred_discriminator}>"

    @property
    def is_season_level(self):
        return self.week is None

    @staticmethod
    def get(participant_id, season, week):
        """Exact lookup; week=None fetches the season-level preference"""
        query = PickSetPreference.query.filter_by(
            participant_id=participant_id, season=season
        )
        if week is None:
            query = query.filter(PickSetPreference.week.is_(None))
        else:
            query = query.filter(PickSetPreference.week == week)
        return query.first()

    @staticmethod
    def get_effective(participant_id, season, week):
        """
        Get the week-level and season-level preferences that apply to a week

        Returns:
            (week_preference, season_preference), either may be None
        """
        return (
            PickSetPreference.get(participant_id, season, week),
            PickSetPreference.get(participant_id, season, None),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "participant_id": self.participant_id,
            "season": self.season,
            "week": self.week,
            "preferred_discriminator": self.preferred_discriminator,
            "set_by_admin": self.set_by_admin,
            "reasoning": self.reasoning,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
