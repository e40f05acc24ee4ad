import re
import logging

import bcrypt
from flask import current_app

from models import db, User, FriendRequest, Friendship, Room, RoomMember, RoomBan, Message, dm_key, utcnow

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r'^[A-Za-z0-9_-]{3,32}$')
ROOM_NAME_RE = re.compile(r'^[\w\- ]{1,64}$')


class ChatError(Exception):
    """A failed chat operation, reported back to the client as-is."""

    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def require_str(value, field):
    """Reject JSON values of the wrong type; None passes through as missing."""
    if value is not None and not isinstance(value, str):
        raise ChatError(f"Invalid {field}")
    return value


# ===== PASSWORDS =====
def hash_password(password):
    rounds = current_app.config.get('BCRYPT_ROUNDS', 12)
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds))


def check_password(password, hashed):
    if not isinstance(password, str) or not password or not hashed:
        return False
    return bcrypt.checkpw(password.encode('utf-8'), hashed)


# ===== USERS =====
def validate_username(username):
    return bool(username) and isinstance(username, str) and bool(USERNAME_RE.match(username))


def find_user(username):
    if not username or not isinstance(username, str):
        return None
    return User.query.filter_by(username=username).first()


def get_user(username):
    user = find_user(username)
    if not user:
        raise ChatError('User not found', 404)
    return user


def create_user(username, password, bio=''):
    username = (require_str(username, 'username') or '').strip()
    require_str(password, 'password')
    bio = require_str(bio, 'bio')
    if not username or not password:
        raise ChatError('Missing fields')
    if not validate_username(username):
        raise ChatError('Username must be 3-32 letters, digits, underscores or hyphens')
    existing = User.query.filter(db.func.lower(User.username) == username.lower()).first()
    if existing:
        raise ChatError('User exists', 409)

    user = User(
        username=username,
        password=hash_password(password),
        avatar=current_app.config['DEFAULT_AVATAR'],
        bio=(bio or '')[:500],
        admin=username in current_app.config.get('ADMIN_USERS', []),
    )
    db.session.add(user)
    db.session.commit()
    logger.info(f"New user registered: {username} (admin={user.admin})")
    return user


def authenticate(username, password):
    require_str(username, 'username')
    require_str(password, 'password')
    if not username or not password:
        raise ChatError('Missing fields')
    user = find_user(username)
    if not user or not check_password(password, user.password):
        logger.warning(f"Invalid credentials for user: {username}")
        raise ChatError('Invalid credentials', 401)
    if user.banned:
        logger.warning(f"Banned user tried to log in: {username}")
        raise ChatError('Banned', 403)
    return user


def search_users(query):
    q = (query or '').strip()
    users = User.query
    if q:
        q = q.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
        users = users.filter(User.username.ilike(f"%{q}%", escape='\\'))
    return users.order_by(User.username).all()


def set_bio(username, bio):
    bio = require_str(bio, 'bio')
    user = get_user(username)
    user.bio = (bio or '')[:500]
    db.session.commit()
    return user


def set_banned(admin_name, target, banned):
    if admin_name == target:
        raise ChatError('Cannot ban yourself')
    user = get_user(target)
    user.banned = banned
    db.session.commit()
    logger.info(f"{admin_name} set banned={banned} on {target}")
    return user


# ===== FRIENDS =====
def friend_names(username):
    rows = Friendship.query.filter_by(owner=username).order_by(Friendship.friend).all()
    return [row.friend for row in rows]


def friends_of(username):
    names = friend_names(username)
    if not names:
        return []
    return User.query.filter(User.username.in_(names)).order_by(User.username).all()


def are_friends(a, b):
    return Friendship.query.filter_by(owner=a, friend=b).first() is not None


def pending_requests(username):
    return FriendRequest.query.filter_by(recipient=username).order_by(FriendRequest.created_at).all()


def _befriend(a, b):
    if not are_friends(a, b):
        db.session.add(Friendship(owner=a, friend=b))
    if not are_friends(b, a):
        db.session.add(Friendship(owner=b, friend=a))


def send_friend_request(sender, to):
    """Returns (request, accepted); a reverse pending request is accepted instead."""
    require_str(to, "'to' field")
    if not to:
        raise ChatError("Missing 'to' field")
    if sender == to:
        raise ChatError('Cannot friend yourself')
    get_user(to)
    if are_friends(sender, to):
        raise ChatError('Already friends', 409)
    if FriendRequest.query.filter_by(sender=sender, recipient=to).first():
        raise ChatError('Already requested', 409)

    reverse = FriendRequest.query.filter_by(sender=to, recipient=sender).first()
    if reverse:
        _befriend(sender, to)
        db.session.delete(reverse)
        db.session.commit()
        return reverse, True

    req = FriendRequest(sender=sender, recipient=to)
    db.session.add(req)
    db.session.commit()
    return req, False


def respond_friend_request(username, request_id, accept):
    require_str(request_id, 'request id')
    req = FriendRequest.query.filter_by(id=request_id, recipient=username).first()
    if not req:
        raise ChatError('Request not found', 404)
    if accept and find_user(req.sender):
        _befriend(req.sender, req.recipient)
    db.session.delete(req)
    db.session.commit()
    return req


def remove_friend(username, other):
    require_str(other, 'username')
    if not are_friends(username, other):
        raise ChatError('Not friends', 404)
    Friendship.query.filter(
        ((Friendship.owner == username) & (Friendship.friend == other)) |
        ((Friendship.owner == other) & (Friendship.friend == username))
    ).delete(synchronize_session=False)
    db.session.commit()


# ===== ROOMS =====
def get_room(name):
    require_str(name, 'room')
    room = db.session.get(Room, name) if name else None
    if not room:
        raise ChatError('Room not found', 404)
    return room


def is_member(room, username):
    return username in room.member_names()


def visible_rooms():
    return Room.query.filter_by(invite_only=False).order_by(Room.created_at).all()


def create_room(owner, name, password=None, invite_only=False):
    require_str(name, 'name')
    require_str(password, 'password')
    name = (name or '').strip()
    if not name:
        raise ChatError('Missing name')
    if not ROOM_NAME_RE.match(name):
        raise ChatError('Invalid room name')
    if db.session.get(Room, name):
        raise ChatError('Room exists', 409)

    room = Room(
        name=name,
        owner=owner,
        password=hash_password(password) if password else None,
        invite_only=bool(invite_only),
    )
    room.members.append(RoomMember(username=owner))
    db.session.add(room)
    db.session.commit()
    logger.info(f"Room '{name}' created by {owner}")
    return room


def resolve_invite(invite_id):
    require_str(invite_id, 'invite')
    room = Room.query.filter_by(invite_id=invite_id).first() if invite_id else None
    if not room:
        raise ChatError('Invite not found', 404)
    return room


def join_room(username, name, password=None, invite=None):
    """Returns (room, joined) where joined is False if already a member."""
    require_str(password, 'password')
    require_str(invite, 'invite')
    room = get_room(name)
    if username in room.banned_names():
        raise ChatError('You are banned from this room', 403)
    if is_member(room, username):
        return room, False

    if not (invite and invite == room.invite_id):
        if room.invite_only:
            raise ChatError('Room is invite only', 403)
        if room.password is not None and not check_password(password, room.password):
            raise ChatError('Wrong password', 403)

    room.members.append(RoomMember(username=username))
    db.session.commit()
    return room, True


def leave_room(username, name):
    room = get_room(name)
    if room.owner == username:
        raise ChatError('Owner cannot leave; delete the room instead')
    _remove_member(room, username)
    db.session.commit()
    return room


def _remove_member(room, username):
    for member in list(room.members):
        if member.username == username:
            room.members.remove(member)


def _require_owner(room, username):
    if room.owner != username:
        logger.warning(f"{username} attempted an owner action on '{room.name}'")
        raise ChatError('Not owner', 403)


def kick(owner, name, target):
    require_str(target, 'target')
    room = get_room(name)
    _require_owner(room, owner)
    if not target:
        raise ChatError('Missing target')
    if target == room.owner:
        raise ChatError('Cannot kick the owner')
    if not is_member(room, target):
        raise ChatError('User is not in this room', 404)
    _remove_member(room, target)
    db.session.commit()
    logger.info(f"{target} kicked from '{name}' by {owner}")
    return room


def ban(owner, name, target):
    require_str(target, 'target')
    room = get_room(name)
    _require_owner(room, owner)
    if not target:
        raise ChatError('Missing target')
    if target == room.owner:
        raise ChatError('Cannot ban the owner')
    get_user(target)
    _remove_member(room, target)
    if target not in room.banned_names():
        room.bans.append(RoomBan(username=target))
    db.session.commit()
    logger.info(f"{target} banned from '{name}' by {owner}")
    return room


def unban(owner, name, target):
    require_str(target, 'target')
    room = get_room(name)
    _require_owner(room, owner)
    for entry in list(room.bans):
        if entry.username == target:
            room.bans.remove(entry)
    db.session.commit()
    return room


def delete_room(username, name):
    room = get_room(name)
    user = get_user(username)
    if room.owner != username and not user.admin:
        raise ChatError('Not allowed', 403)
    Message.query.filter_by(room=name).delete(synchronize_session=False)
    db.session.delete(room)
    db.session.commit()
    logger.info(f"Room '{name}' deleted by {username}")


# ===== MESSAGES =====
def _history(query):
    limit = current_app.config.get('HISTORY_LIMIT', 200)
    rows = query.order_by(Message.seq.desc()).limit(limit).all()
    return list(reversed(rows))


def room_history(username, name):
    room = get_room(name)
    if not is_member(room, username):
        raise ChatError('Not a member of this room', 403)
    return _history(Message.query.filter_by(room=name))


def dm_history(username, other):
    require_str(other, 'username')
    get_user(other)
    return _history(Message.query.filter_by(pair=dm_key(username, other)))


def _clean_text(text):
    text = (text or '').strip() if isinstance(text, str) else ''
    if not text:
        raise ChatError('Message is empty')
    if len(text) > current_app.config.get('MAX_MESSAGE_LENGTH', 2000):
        raise ChatError('Message too long')
    return text


def post_room_message(sender, name, text):
    text = _clean_text(text)
    room = get_room(name)
    if not is_member(room, sender):
        raise ChatError('Not a member of this room', 403)
    msg = Message(sender=sender, room=name, text=text)
    db.session.add(msg)
    db.session.commit()
    return msg


def post_direct_message(sender, to, text):
    require_str(to, 'recipient')
    text = _clean_text(text)
    get_user(to)
    if not are_friends(sender, to):
        raise ChatError('You can only message friends', 403)
    msg = Message(sender=sender, pair=dm_key(sender, to), recipient=to, text=text)
    db.session.add(msg)
    db.session.commit()
    return msg


def get_message(message_id):
    require_str(message_id, 'message id')
    msg = Message.query.filter_by(id=message_id).first() if message_id else None
    if not msg:
        raise ChatError('Message not found', 404)
    return msg


def edit_message(username, message_id, text):
    msg = get_message(message_id)
    if msg.sender != username:
        raise ChatError('Not allowed', 403)
    msg.text = _clean_text(text)
    msg.edited_at = utcnow()
    db.session.commit()
    return msg


def delete_message(username, message_id):
    """Deletes a message and returns its last serialized form."""
    msg = get_message(message_id)
    allowed = msg.sender == username
    if not allowed and msg.room is not None:
        room = db.session.get(Room, msg.room)
        allowed = room is not None and room.owner == username
    if not allowed:
        allowed = get_user(username).admin
    if not allowed:
        raise ChatError('Not allowed', 403)
    data = msg.to_dict()
    db.session.delete(msg)
    db.session.commit()
    return data
