import re
from flask_sqlalchemy import SQLAlchemy
from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()

PIN_RE = re.compile(r'[0-9]{4}')

class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    pin_hash = db.Column(db.String(200), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    recurring_events = db.relationship('RecurringEvent', backref='owner', lazy=True, cascade="all, delete-orphan")

    def set_pin(self, pin):
        if not PIN_RE.fullmatch(str(pin or '')):
            raise ValueError('PIN must be exactly 4 digits')
        self.pin_hash = generate_password_hash(pin)

    def check_pin(self, pin):
        if not self.pin_hash:
            return False
        return check_password_hash(self.pin_hash, str(pin or ''))

    def to_dict(self):
        return {
            'user_id': self.id,
            'username': self.username,
        }


class RecurringEvent(db.Model):
    """
    Monthly/yearly recurring rule. base_day is a plain calendar date (no time,
    no timezone); only its day (MONTHLY) or month+day (YEARLY) is used for matching.
    A NULL user_id marks an anonymous/global rule.
    """
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True, index=True)
    title = db.Column(db.String(120), nullable=False)
    base_day = db.Column(db.Date, nullable=False)
    recurrence = db.Column(db.String(20), nullable=False)  # MONTHLY | YEARLY
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    skips = db.relationship(
        'RecurrenceSkip',
        backref='rule',
        lazy=True,
        cascade="all, delete-orphan",
        order_by="RecurrenceSkip.day"
    )
    # Stored order matters: the first override for a date wins.
    overrides = db.relationship(
        'RecurrenceOverride',
        backref='rule',
        lazy=True,
        cascade="all, delete-orphan",
        order_by="RecurrenceOverride.id"
    )


class RecurrenceSkip(db.Model):
    """A date on which the owning rule produces no occurrence."""
    __table_args__ = (db.UniqueConstraint('recurrence_id', 'day', name='uq_recurrence_skip_day'),)

    id = db.Column(db.Integer, primary_key=True)
    recurrence_id = db.Column(db.Integer, db.ForeignKey('recurring_event.id'), nullable=False, index=True)
    day = db.Column(db.Date, nullable=False)


class RecurrenceOverride(db.Model):
    """Per-date title/notes replacement. Duplicate days are allowed; the lowest id wins."""
    id = db.Column(db.Integer, primary_key=True)
    recurrence_id = db.Column(db.Integer, db.ForeignKey('recurring_event.id'), nullable=False, index=True)
    day = db.Column(db.Date, nullable=False)
    title = db.Column(db.String(120), nullable=True)
    notes = db.Column(db.Text, nullable=True)
