from pickpool import db

WEEK_SCOPE = "week"
SEASON_SCOPE = "season"
PERIOD_SCOPES = (WEEK_SCOPE, SEASON_SCOPE)

# Computed from the week rows on read; never stored as entries
BEST_FINISH_SCOPE = "best_finish"
LEADERBOARD_SCOPES = PERIOD_SCOPES + (BEST_FINISH_SCOPE,)

STATUS_OK = "ok"
STATUS_NEEDS_ADMIN = "needs_admin_resolution"

MIXED_SOURCE = "mixed"


def period_key_for(scope, season, week=None):
    """Build the period key used to address a leaderboard scope"""
    if scope == WEEK_SCOPE:
        return f"{season}-W{int(week):02d}"
    return str(season)


def parse_period_key(scope, period_key):
    """
    Parse a period key back into (season, week)

    Raises:
        ValueError: if the key does not match the scope's format
    """
    if scope == WEEK_SCOPE:
        season_part, sep, week_part = period_key.partition("-W")
        if not sep:
            raise ValueError(f"Invalid week period key: {period_key}")
        return int(season_part), int(week_part)
    if scope in (SEASON_SCOPE, BEST_FINISH_SCOPE):
        return int(period_key), None
    raise ValueError(f"Unknown period scope: {scope}")


class LeaderboardEntry(db.Model):
    """
    Cached leaderboard row. Rebuildable at any time from games, pick sets and
    preferences; holds no state of its own.
    """

    __tablename__ = "leaderboard_entries"

    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(
        db.Integer, db.ForeignKey("participants.id"), nullable=False
    )
    display_name = db.Column(db.String(100), nullable=False)

    # Scope
    scope = db.Column(db.String(10), nullable=False)
    period_key = db.Column(db.String(20), nullable=False)
    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=True)

    # Authoritative source
    source_kind = db.Column(db.String(20))
    source_discriminator = db.Column(db.String(255))
    is_admin_override = db.Column(db.Boolean, nullable=False, default=False)

    # Totals
    total_picks = db.Column(db.Integer, nullable=False, default=0)
    wins = db.Column(db.Integer, nullable=False, default=0)
    losses = db.Column(db.Integer, nullable=False, default=0)
    pushes = db.Column(db.Integer, nullable=False, default=0)
    pending = db.Column(db.Integer, nullable=False, default=0)
    lock_wins = db.Column(db.Integer, nullable=False, default=0)
    lock_losses = db.Column(db.Integer, nullable=False, default=0)
    total_points = db.Column(db.Integer, nullable=False, default=0)
    rank = db.Column(db.Integer, nullable=True)

    # Resolution status
    status = db.Column(db.String(30), nullable=False, default=STATUS_OK)
    status_detail = db.Column(db.String(500))

    # Relationships
    participant = db.relationship("Participant")

    __table_args__ = (
        db.UniqueConstraint(
            "participant_id", "scope", "period_key", name="unique_leaderboard_entry"
        ),
        db.Index("idx_leaderboard_scope", "scope", "period_key"),
    )

    def __repr__(self):
        return f"<LeaderboardEntry {self.scope}:{self.period_key} participant={self.participant_id} rank={self.rank}>"

    # Column values copied from an aggregator row
    ROW_FIELDS = (
        "display_name",
        "season",
        "week",
        "source_kind",
        "source_discriminator",
        "is_admin_override",
        "total_picks",
        "wins",
        "losses",
        "pushes",
        "pending",
        "lock_wins",
        "lock_losses",
        "total_points",
        "status",
        "status_detail",
    )

    @staticmethod
    def get_entry(participant_id, scope, period_key):
        return LeaderboardEntry.query.filter_by(
            participant_id=participant_id, scope=scope, period_key=period_key
        ).first()

    @staticmethod
    def get_scope(scope, period_key):
        """All cached entries for a scope (unordered)"""
        return LeaderboardEntry.query.filter_by(
            scope=scope, period_key=period_key
        ).all()

    @staticmethod
    def upsert_row(row):
        """Insert or update the cached entry for an aggregator row"""
        entry = LeaderboardEntry.get_entry(row.participant_id, row.scope, row.period_key)
        if entry is None:
            entry = LeaderboardEntry(
                participant_id=row.participant_id,
                scope=row.scope,
                period_key=row.period_key,
            )
            db.session.add(entry)

        for field in LeaderboardEntry.ROW_FIELDS:
            setattr(entry, field, getattr(row, field))
        return entry

    @staticmethod
    def delete_entry(participant_id, scope, period_key):
        """Remove a participant's entry; returns the number of rows removed"""
        return LeaderboardEntry.query.filter_by(
            participant_id=participant_id, scope=scope, period_key=period_key
        ).delete(synchronize_session="fetch")

    def to_dict(self):
        """Convert entry to dictionary for API responses"""
        return {
            "rank": self.rank,
            "participant_id": self.participant_id,
            "display_name": self.display_name,
            "scope": self.scope,
            "period_key": self.period_key,
            "season": self.season,
            "week": self.week,
            "source_kind": self.source_kind,
            "source_discriminator": self.source_discriminator,
            "is_admin_override": self.is_admin_override,
            "total_picks": self.total_picks,
            "wins": self.wins,
            "losses": self.losses,
            "pushes": self.pushes,
            "pending": self.pending,
            "lock_wins": self.lock_wins,
            "lock_losses": self.lock_losses,
            "total_points": self.total_points,
            "status": self.status,
            "status_detail": self.status_detail,
        }
