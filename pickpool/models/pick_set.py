from datetime import datetime, timezone

from pickpool import db

AUTHENTICATED = "authenticated"
ANONYMOUS = "anonymous"
CUSTOM = "custom"

SOURCE_KINDS = (AUTHENTICATED, ANONYMOUS, CUSTOM)

# Precedence order used for stable listing (not for selection)
SOURCE_KIND_ORDER = {AUTHENTICATED: 0, ANONYMOUS: 1, CUSTOM: 2}

PICK_SIDES = ("home", "away")


class PickSet(db.Model):
    __tablename__ = "pick_sets"

    id = db.Column(db.Integer, primary_key=True)

    # Owner; anonymous submissions stay unassigned until linked
    participant_id = db.Column(
        db.Integer, db.ForeignKey("participants.id"), nullable=True
    )

    # Period
    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=False)

    # Source identity
    source_kind = db.Column(db.String(20), nullable=False)
    source_discriminator = db.Column(db.String(255), nullable=False)
    submitter_email = db.Column(db.String(120), nullable=True)

    # Timestamps
    submitted_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    selections = db.relationship(
        "PickSelection",
        backref="pick_set",
        lazy="select",
        cascade="all, delete-orphan",
        order_by="PickSelection.position",
    )

    # Constraints and indexes
    __table_args__ = (
        db.UniqueConstraint(
            "participant_id",
            "season",
            "week",
            "source_kind",
            "source_discriminator",
            name="unique_pick_set_source",
        ),
        db.Index("idx_pick_set_participant_period", "participant_id", "season", "week"),
        db.Index("idx_pick_set_period", "season", "week"),
        db.CheckConstraint(
            "source_kind IN ('authenticated', 'anonymous')", name="pick_set_kind"
        ),
    )

    def __repr__(self):
        return (
            f"<PickSet {self.source_kind}:{self.source_discriminator} "
            f"participant={self.participant_id} {self.season}/W{self.week}>"
        )

    @property
    def lock_count(self):
        return sum(1 for selection in self.selections if selection.is_lock)

    def selection_for_game(self, game_id):
        """Get this set's selection for a game, if any"""
        for selection in self.selections:
            if selection.game_id == game_id:
                return selection
        return None

    def replace_selections(self, selections):
        """
        Edit selections in place, keyed by game.

        Existing rows for games still present keep their ids; rows for games
        no longer present are removed.

        Args:
            selections: list of dicts with game_id, selected_side, is_lock
        """
        existing = {selection.game_id: selection for selection in self.selections}
        wanted_game_ids = set()

        for position, data in enumerate(selections):
            game_id = data["game_id"]
            wanted_game_ids.add(game_id)
            selection = existing.get(game_id)
            if selection is None:
                selection = PickSelection(game_id=game_id)
                self.selections.append(selection)
            selection.selected_side = data["selected_side"]
            selection.is_lock = bool(data["is_lock"])
            selection.position = position

        for game_id, selection in existing.items():
            if game_id not in wanted_game_ids:
                self.selections.remove(selection)

    @staticmethod
    def get_for_period(participant_id, season, week):
        """All stored pick sets for a participant in a week"""
        return (
            PickSet.query.filter_by(
                participant_id=participant_id, season=season, week=week
            )
            .order_by(PickSet.submitted_at, PickSet.id)
            .all()
        )

    @staticmethod
    def find_by_identity(participant_id, season, week, source_kind, source_discriminator):
        return PickSet.query.filter_by(
            participant_id=participant_id,
            season=season,
            week=week,
            source_kind=source_kind,
            source_discriminator=source_discriminator,
        ).first()

    def to_dict(self):
        """Convert pick set to dictionary for API responses"""
        return {
            "id": self.id,
            "participant_id": self.participant_id,
            "season": self.season,
            "week": self.week,
            "source_kind": self.source_kind,
            "source_discriminator": self.source_discriminator,
            "submitter_email": self.submitter_email,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "selections": [selection.to_dict() for selection in self.selections],
        }


class PickSelection(db.Model):
    __tablename__ = "pick_selections"

    id = db.Column(db.Integer, primary_key=True)
    pick_set_id = db.Column(
        db.Integer, db.ForeignKey("pick_sets.id"), nullable=False
    )
    game_id = db.Column(db.Integer, db.ForeignKey("games.id"), nullable=False)

    # Pick details
    selected_side = db.Column(db.String(10), nullable=False)
    is_lock = db.Column(db.Boolean, nullable=False, default=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    # Relationships
    game = db.relationship("Game")

    __table_args__ = (
        db.UniqueConstraint("pick_set_id", "game_id", name="unique_pick_set_game"),
        db.Index("idx_pick_selection_game", "game_id"),
        db.CheckConstraint(
            "selected_side IN ('home', 'away')", name="pick_selection_side"
        ),
    )

    def __repr__(self):
        return f"<PickSelection game_id={self.game_id} side={self.selected_side} lock={self.is_lock}>"

    def to_dict(self):
        return {
            "id": self.id,
            "game_id": self.game_id,
            "selected_side": self.selected_side,
            "is_lock": self.is_lock,
        }
