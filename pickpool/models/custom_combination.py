from datetime import datetime, timezone

from pickpool import db


class CustomCombination(db.Model):
    """Admin-crafted synthetic pick set, one per participant and week"""

    __tablename__ = "custom_combinations"

    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(
        db.Integer, db.ForeignKey("participants.id"), nullable=False
    )
    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=False)

    # The single game whose chosen selection acts as the lock
    lock_game_id = db.Column(db.Integer, db.ForeignKey("games.id"), nullable=False)

    # Admin tracking
    created_by_admin = db.Column(db.String(100), nullable=False)
    reasoning = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    participant = db.relationship("Participant")
    choices = db.relationship(
        "CustomCombinationChoice",
        backref="combination",
        lazy="select",
        cascade="all, delete-orphan",
        order_by="CustomCombinationChoice.position",
    )

    __table_args__ = (
        db.UniqueConstraint(
            "participant_id", "season", "week", name="unique_custom_combination"
        ),
    )

    def __repr__(self):
        return f"<CustomCombination participant={self.participant_id} {self.season}/W{self.week}>"

    @staticmethod
    def get_for_period(participant_id, season, week):
        return CustomCombination.query.filter_by(
            participant_id=participant_id, season=season, week=week
        ).first()

    def to_dict(self):
        return {
            "id": self.id,
            "participant_id": self.participant_id,
            "season": self.season,
            "week": self.week,
            "lock_game_id": self.lock_game_id,
            "created_by_admin": self.created_by_admin,
            "reasoning": self.reasoning,
            "choices": [
                {"game_id": choice.game_id, "source_pick_set_id": choice.source_pick_set_id}
                for choice in self.choices
            ],
        }


class CustomCombinationChoice(db.Model):
    """Which stored pick set supplies the selection for one game"""

    __tablename__ = "custom_combination_choices"

    id = db.Column(db.Integer, primary_key=True)
    combination_id = db.Column(
        db.Integer, db.ForeignKey("custom_combinations.id"), nullable=False
    )
    game_id = db.Column(db.Integer, db.ForeignKey("games.id"), nullable=False)
    source_pick_set_id = db.Column(
        db.Integer, db.ForeignKey("pick_sets.id"), nullable=False
    )
    position = db.Column(db.Integer, nullable=False, default=0)

    # Relationships
    source_pick_set = db.relationship("PickSet")

    __table_args__ = (
        db.UniqueConstraint("combination_id", "game_id", name="unique_combination_game"),
    )
