from datetime import datetime, timezone

from pickpool import db


class Participant(db.Model):
    __tablename__ = "participants"

    id = db.Column(db.Integer, primary_key=True)
    display_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=True, index=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    pick_sets = db.relationship("PickSet", backref="participant", lazy="dynamic")

    def __repr__(self):
        return f"<Participant {self.display_name}>"

    def set_display_name(self, display_name):
        """Set display name with sanitization"""
        import html

        if display_name:
            self.display_name = html.escape(display_name.strip())
        else:
            self.display_name = display_name

    def to_dict(self):
        """Convert participant to dictionary for API responses"""
        return {
            "id": self.id,
            "display_name": self.display_name,
            "email": self.email,
        }
