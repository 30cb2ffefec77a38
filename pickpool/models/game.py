from datetime import datetime, timezone

from pickpool import db

GAME_STATUSES = ("scheduled", "in_progress", "completed")


class Game(db.Model):
    __tablename__ = "games"

    # Identity is supplied by the ingestion feed
    id = db.Column(db.Integer, primary_key=True, autoincrement=False)

    # Period
    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=False)

    # Teams
    home_team = db.Column(db.String(100), nullable=False)
    away_team = db.Column(db.String(100), nullable=False)

    # Point spread (home-relative, added to the home score)
    spread = db.Column(db.Float, nullable=False, default=0.0)

    # Scores
    home_score = db.Column(db.Integer)
    away_score = db.Column(db.Integer)

    # Game status
    status = db.Column(db.String(20), nullable=False, default="scheduled")

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Indexes
    __table_args__ = (
        db.Index("idx_game_season_week", "season", "week"),
        db.CheckConstraint("home_team != away_team", name="different_teams"),
    )

    def __repr__(self):
        return f"<Game {self.away_team} @ {self.home_team} Week {self.week}>"

    @property
    def is_final(self):
        """True only when the game is completed with both scores known"""
        return (
            self.status == "completed"
            and self.home_score is not None
            and self.away_score is not None
        )

    def result(self, epsilon=0):
        """Resolved result against the spread (undetermined unless final)"""
        from pickpool.utils.scoring import resolve_game

        return resolve_game(self, epsilon=epsilon)

    def side_for_team(self, team):
        """Map a team name back to its side"""
        if team == self.home_team:
            return "home"
        if team == self.away_team:
            return "away"
        return None

    @staticmethod
    def get_games_for_period(season, week):
        """Get all games for a specific week ordered by id"""
        return (
            Game.query.filter_by(season=season, week=week).order_by(Game.id).all()
        )

    def to_dict(self, epsilon=0):
        """Convert game to dictionary for API responses"""
        result = self.result(epsilon=epsilon)
        return {
            "id": self.id,
            "season": self.season,
            "week": self.week,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "spread": self.spread,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "status": self.status,
            "covering_side": result.covering_side,
            "margin_bonus": result.margin_bonus,
        }
