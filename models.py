import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

# Initialize SQLAlchemy (to be initialized with app in app.py)
db = SQLAlchemy()


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def gen_hex():
    return uuid.uuid4().hex


def gen_invite_id():
    return uuid.uuid4().hex[:8]


def dm_key(a, b):
    """Thread key for a direct conversation, independent of argument order."""
    return '|'.join(sorted([a, b]))


def format_ts(value):
    return value.strftime('%Y-%m-%d %H:%M:%S') if value else None


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(32), unique=True, nullable=False)
    password = db.Column(db.LargeBinary, nullable=False)
    avatar = db.Column(db.String(255), nullable=False)
    bio = db.Column(db.String(500), nullable=False, default='')
    admin = db.Column(db.Boolean, nullable=False, default=False)
    banned = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def summary(self):
        return {'username': self.username, 'avatar': self.avatar, 'admin': self.admin}


class FriendRequest(db.Model):
    __tablename__ = 'friend_requests'
    id = db.Column(db.String(32), primary_key=True, default=gen_hex)
    sender = db.Column(db.String(32), nullable=False, index=True)
    recipient = db.Column(db.String(32), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'from': self.sender,
            'to': self.recipient,
            'timestamp': format_ts(self.created_at),
        }


class Friendship(db.Model):
    """One direction of a friendship; accepted requests always write both."""
    __tablename__ = 'friendships'
    owner = db.Column(db.String(32), primary_key=True)
    friend = db.Column(db.String(32), primary_key=True)


class Room(db.Model):
    __tablename__ = 'rooms'
    name = db.Column(db.String(64), primary_key=True)
    owner = db.Column(db.String(32), nullable=False)
    password = db.Column(db.LargeBinary, nullable=True)
    invite_only = db.Column(db.Boolean, nullable=False, default=False)
    invite_id = db.Column(db.String(8), unique=True, nullable=False, default=gen_invite_id)
    created_at = db.Column(db.DateTime, default=utcnow)

    members = db.relationship('RoomMember', backref='room', cascade='all, delete-orphan', lazy=True)
    bans = db.relationship('RoomBan', backref='room', cascade='all, delete-orphan', lazy=True)

    def member_names(self):
        return sorted(m.username for m in self.members)

    def banned_names(self):
        return sorted(b.username for b in self.bans)

    def to_dict(self):
        return {
            'name': self.name,
            'owner': self.owner,
            'private': self.password is not None,
            'inviteOnly': self.invite_only,
            'members': len(self.members),
        }


class RoomMember(db.Model):
    __tablename__ = 'room_members'
    room_name = db.Column(db.String(64), db.ForeignKey('rooms.name'), primary_key=True)
    username = db.Column(db.String(32), primary_key=True)
    joined_at = db.Column(db.DateTime, default=utcnow)


class RoomBan(db.Model):
    __tablename__ = 'room_bans'
    room_name = db.Column(db.String(64), db.ForeignKey('rooms.name'), primary_key=True)
    username = db.Column(db.String(32), primary_key=True)


class Message(db.Model):
    __tablename__ = 'messages'
    seq = db.Column(db.Integer, primary_key=True)  # insertion order
    id = db.Column(db.String(32), unique=True, nullable=False, default=gen_hex)
    sender = db.Column(db.String(32), nullable=False)
    room = db.Column(db.String(64), nullable=True, index=True)  # Null for DMs
    pair = db.Column(db.String(65), nullable=True, index=True)  # Null for room messages
    recipient = db.Column(db.String(32), nullable=True)
    text = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    edited_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self):
        data = {
            'id': self.id,
            'from': self.sender,
            'text': self.text,
            'timestamp': format_ts(self.created_at),
            'edited': format_ts(self.edited_at),
        }
        if self.room is not None:
            data['room'] = self.room
        else:
            data['pair'] = self.pair
            data['to'] = self.recipient
        return data
