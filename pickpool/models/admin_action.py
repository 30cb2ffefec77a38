from datetime import datetime, timezone

from pickpool import db


class AdminAction(db.Model):
    __tablename__ = "admin_actions"

    id = db.Column(db.Integer, primary_key=True)

    # Action details
    admin_id = db.Column(db.String(100), nullable=False)
    participant_id = db.Column(
        db.Integer, db.ForeignKey("participants.id"), nullable=True
    )  # Participant being acted upon

    # Action type and details
    action_type = db.Column(
        db.String(50), nullable=False
    )  # 'set_preference', 'clear_preference', 'set_combination', 'assign_pick_set', 'recompute'
    action_description = db.Column(db.String(500), nullable=False)

    # Related period for context
    season = db.Column(db.Integer, nullable=True)
    week = db.Column(db.Integer, nullable=True)

    # Additional context data (JSON)
    action_metadata = db.Column(db.JSON, nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    participant = db.relationship("Participant", backref="admin_actions_received")

    # Indexes
    __table_args__ = (
        db.Index("idx_admin_action_admin", "admin_id"),
        db.Index("idx_admin_action_participant", "participant_id"),
        db.Index("idx_admin_action_type", "action_type"),
        db.Index("idx_admin_action_created", "created_at"),
    )

    def __repr__(self):
        return f"<AdminAction {self.action_type} by {self.admin_id}>"

    @staticmethod
    def log_action(
        admin_id,
        action_type,
        description,
        participant_id=None,
        season=None,
        week=None,
        action_metadata=None,
    ):
        """Log an admin action"""
        action = AdminAction(
            admin_id=str(admin_id),
            participant_id=participant_id,
            action_type=action_type,
            action_description=description,
            season=season,
            week=week,
            action_metadata=action_metadata or {},
        )

        db.session.add(action)
        return action

    @staticmethod
    def log_preference_set(admin_id, preference, previous=None):
        """Convenience method for logging a pick set preference change"""
        scope = f"week {preference.week}" if preference.week is not None else "the season"
        description = (
            f"Pinned '{preference.preferred_discriminator}' as authoritative for "
            f"participant {preference.participant_id} in {preference.season} {scope}"
        )

        return AdminAction.log_action(
            admin_id=admin_id,
            action_type="set_preference",
            description=description,
            participant_id=preference.participant_id,
            season=preference.season,
            week=preference.week,
            action_metadata={
                "preferred_discriminator": preference.preferred_discriminator,
                "previous_discriminator": previous,
                "reasoning": preference.reasoning,
            },
        )

    @staticmethod
    def log_preference_cleared(admin_id, participant_id, season, week, previous):
        """Convenience method for logging removal of a preference"""
        return AdminAction.log_action(
            admin_id=admin_id,
            action_type="clear_preference",
            description=f"Cleared pick set preference '{previous}' for participant {participant_id}",
            participant_id=participant_id,
            season=season,
            week=week,
            action_metadata={"previous_discriminator": previous},
        )

    @staticmethod
    def log_combination_set(admin_id, combination):
        """Convenience method for logging a custom combination"""
        return AdminAction.log_action(
            admin_id=admin_id,
            action_type="set_combination",
            description=(
                f"Built custom combination of {len(combination.choices)} picks for "
                f"participant {combination.participant_id} (Week {combination.week})"
            ),
            participant_id=combination.participant_id,
            season=combination.season,
            week=combination.week,
            action_metadata={
                "lock_game_id": combination.lock_game_id,
                "choices": {
                    str(choice.game_id): choice.source_pick_set_id
                    for choice in combination.choices
                },
                "reasoning": combination.reasoning,
            },
        )

    @staticmethod
    def log_pick_set_assignment(admin_id, pick_set):
        """Convenience method for linking an anonymous pick set to a participant"""
        return AdminAction.log_action(
            admin_id=admin_id,
            action_type="assign_pick_set",
            description=(
                f"Assigned anonymous pick set {pick_set.source_discriminator} to "
                f"participant {pick_set.participant_id}"
            ),
            participant_id=pick_set.participant_id,
            season=pick_set.season,
            week=pick_set.week,
            action_metadata={
                "pick_set_id": pick_set.id,
                "submitter_email": pick_set.submitter_email,
            },
        )

    @staticmethod
    def log_recompute(admin_id, summary, participant_id=None, season=None, week=None):
        """Convenience method for logging a manual recompute"""
        return AdminAction.log_action(
            admin_id=admin_id,
            action_type="recompute",
            description=f"Manual recompute: {summary.get('keys_recomputed', 0)} keys",
            participant_id=participant_id,
            season=season,
            week=week,
            action_metadata=summary,
        )

    def to_dict(self):
        """Convert action to dictionary for API responses"""
        return {
            "id": self.id,
            "admin_id": self.admin_id,
            "participant_id": self.participant_id,
            "action_type": self.action_type,
            "action_description": self.action_description,
            "season": self.season,
            "week": self.week,
            "action_metadata": self.action_metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
