import logging
import functools

from flask import Blueprint, current_app, g, jsonify, request, send_from_directory, session

import services
from avatars import avatar_dir, save_avatar
from events import (
    disconnect_user,
    notify_avatar,
    notify_friend_accepted,
    notify_friend_request,
    notify_message,
    notify_message_deleted,
    notify_message_edited,
    notify_room_deleted,
    remove_from_channel,
)
from services import ChatError

logger = logging.getLogger('ChatRoutes')

bp = Blueprint('chat', __name__)


def ok(**payload):
    return jsonify({'success': True, **payload})


def body():
    """Request fields as a dict; a JSON body that is not an object counts as empty."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    if data is not None:
        return {}
    return request.form.to_dict()


def flag(value):
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


def login_required(f):
    """Resolve the session user into g.user; stale or banned sessions are cleared."""
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        user = services.find_user(session.get('username'))
        if not user:
            session.clear()
            raise ChatError('Not logged in', 401)
        if user.banned:
            session.clear()
            raise ChatError('Banned', 403)
        g.user = user
        return f(*args, **kwargs)
    return wrapper


def admin_required(f):
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        if not g.user.admin:
            logger.warning(f"Non-admin {g.user.username} tried {request.path}")
            raise ChatError('Admin only', 403)
        return f(*args, **kwargs)
    return wrapper


def _login(user):
    session.clear()
    session['username'] = user.username
    session.permanent = True


# ===== AUTH =====
@bp.route('/signup', methods=['POST'])
def signup():
    data = body()
    user = services.create_user(data.get('username'), data.get('password'), data.get('bio', ''))
    _login(user)
    return ok(username=user.username), 201


@bp.route('/login', methods=['POST'])
def login():
    data = body()
    user = services.authenticate(data.get('username'), data.get('password'))
    _login(user)
    logger.info(f"Login successful for user: {user.username}")
    return ok(username=user.username)


@bp.route('/logout', methods=['POST'])
def logout():
    username = session.get('username')
    if username:
        logger.info(f"Logout for user: {username}")
    session.clear()
    return ok()


@bp.route('/me')
@login_required
def me():
    u = g.user
    return ok(
        username=u.username,
        avatar=u.avatar,
        bio=u.bio,
        admin=u.admin,
        friends=services.friend_names(u.username),
        requests=[r.sender for r in services.pending_requests(u.username)],
    )


@bp.route('/users')
def users():
    return ok(users=[
        {'username': u.username, 'avatar': u.avatar}
        for u in services.search_users(request.args.get('q', ''))
    ])


@bp.route('/profile/<username>')
@login_required
def profile(username):
    u = services.get_user(username)
    return ok(
        username=u.username,
        avatar=u.avatar,
        bio=u.bio,
        admin=u.admin,
        friends=len(services.friend_names(u.username)),
    )


@bp.route('/profile', methods=['POST'])
@login_required
def update_profile():
    u = services.set_bio(g.user.username, body().get('bio', ''))
    return ok(bio=u.bio)


@bp.route('/avatar', methods=['POST'])
@login_required
def upload_avatar():
    u = save_avatar(g.user.username, request.files.get('avatar'))
    notify_avatar(u)
    return ok(avatar=u.avatar)


@bp.route('/avatars/<path:filename>')
def avatar_file(filename):
    return send_from_directory(avatar_dir(), filename)


# ===== FRIENDS =====
@bp.route('/friend/request', methods=['POST'])
@login_required
def friend_request():
    req, accepted = services.send_friend_request(g.user.username, body().get('to'))
    if accepted:
        notify_friend_accepted(req)
    else:
        notify_friend_request(req)
    return ok(accepted=accepted)


@bp.route('/friend/requests')
@login_required
def friend_requests():
    return ok(requests=[r.to_dict() for r in services.pending_requests(g.user.username)])


@bp.route('/friend/respond', methods=['POST'])
@login_required
def friend_respond():
    data = body()
    accept = flag(data.get('accept'))
    req = services.respond_friend_request(g.user.username, data.get('id'), accept)
    if accept:
        notify_friend_accepted(req)
    return ok()


@bp.route('/friend/remove', methods=['POST'])
@login_required
def friend_remove():
    services.remove_friend(g.user.username, body().get('username'))
    return ok()


@bp.route('/friends')
@login_required
def friends():
    return ok(friends=[
        {'username': u.username, 'avatar': u.avatar}
        for u in services.friends_of(g.user.username)
    ])


# ===== ROOMS =====
@bp.route('/rooms')
def rooms():
    return ok(rooms=[r.to_dict() for r in services.visible_rooms()])


@bp.route('/rooms/create', methods=['POST'])
@login_required
def create_room():
    data = body()
    room = services.create_room(
        g.user.username,
        data.get('name'),
        password=data.get('password') or None,
        invite_only=flag(data.get('inviteOnly')),
    )
    return ok(name=room.name, inviteId=room.invite_id), 201


@bp.route('/rooms/invite/<invite_id>')
@login_required
def room_invite(invite_id):
    room = services.resolve_invite(invite_id)
    return ok(name=room.name, room=room.to_dict())


@bp.route('/rooms/<name>')
@login_required
def room_details(name):
    room = services.get_room(name)
    member = services.is_member(room, g.user.username)
    if room.invite_only and not member:
        raise ChatError('Room not found', 404)
    data = room.to_dict()
    if member:
        data['memberList'] = room.member_names()
    if room.owner == g.user.username:
        data['inviteId'] = room.invite_id
        data['banned'] = room.banned_names()
    return ok(room=data)


@bp.route('/rooms/<name>/join', methods=['POST'])
@login_required
def join_room(name):
    data = body()
    room, joined = services.join_room(g.user.username, name, data.get('password'), data.get('invite'))
    return ok(name=room.name, joined=joined)


@bp.route('/rooms/<name>/leave', methods=['POST'])
@login_required
def leave_room(name):
    services.leave_room(g.user.username, name)
    remove_from_channel(g.user.username, name, 'leftRoom', f'{g.user.username} left {name}')
    return ok()


@bp.route('/rooms/<name>/kick', methods=['POST'])
@login_required
def kick(name):
    target = body().get('target')
    services.kick(g.user.username, name, target)
    remove_from_channel(target, name, 'kicked', f'{target} was kicked from {name}')
    return ok()


@bp.route('/rooms/<name>/ban', methods=['POST'])
@login_required
def ban(name):
    target = body().get('target')
    services.ban(g.user.username, name, target)
    remove_from_channel(target, name, 'banned', f'{target} was banned from {name}')
    return ok()


@bp.route('/rooms/<name>/unban', methods=['POST'])
@login_required
def unban(name):
    services.unban(g.user.username, name, body().get('target'))
    return ok()


@bp.route('/rooms/<name>/delete', methods=['POST'])
@login_required
def delete_room(name):
    services.delete_room(g.user.username, name)
    notify_room_deleted(name)
    return ok()


@bp.route('/rooms/<name>/messages')
@login_required
def room_messages(name):
    return ok(messages=[m.to_dict() for m in services.room_history(g.user.username, name)])


# ===== MESSAGES / DMS =====
@bp.route('/messages', methods=['POST'])
@login_required
def send_message():
    data = body()
    if data.get('room'):
        msg = services.post_room_message(g.user.username, data['room'], data.get('text'))
    elif data.get('to'):
        msg = services.post_direct_message(g.user.username, data['to'], data.get('text'))
    else:
        raise ChatError('room or to required')
    notify_message(msg)
    return ok(message=msg.to_dict()), 201


@bp.route('/messages/<message_id>', methods=['PATCH'])
@login_required
def edit_message(message_id):
    msg = services.edit_message(g.user.username, message_id, body().get('text'))
    notify_message_edited(msg)
    return ok(message=msg.to_dict())


@bp.route('/messages/<message_id>', methods=['DELETE'])
@login_required
def delete_message(message_id):
    deleted = services.delete_message(g.user.username, message_id)
    notify_message_deleted(deleted)
    return ok(id=deleted['id'])


@bp.route('/dms')
@login_required
def dms():
    return ok(contacts=[
        {'username': u.username, 'avatar': u.avatar}
        for u in services.friends_of(g.user.username)
    ])


@bp.route('/dm/<friend>')
@login_required
def dm_thread(friend):
    return ok(withUser=friend, messages=[m.to_dict() for m in services.dm_history(g.user.username, friend)])


# ===== ADMIN =====
@bp.route('/admin/users')
@login_required
@admin_required
def admin_users():
    return ok(users=[
        {**u.summary(), 'banned': u.banned, 'created_at': u.created_at.strftime('%Y-%m-%d %H:%M:%S')}
        for u in services.search_users('')
    ])


@bp.route('/admin/users/<username>/ban', methods=['POST'])
@login_required
@admin_required
def admin_ban(username):
    services.set_banned(g.user.username, username, True)
    disconnect_user(username)
    return ok()


@bp.route('/admin/users/<username>/unban', methods=['POST'])
@login_required
@admin_required
def admin_unban(username):
    services.set_banned(g.user.username, username, False)
    return ok()


@bp.route('/')
def index():
    return jsonify({'service': current_app.config.get('SERVICE_NAME', 'chatroom'), 'status': 'running'})
