import logging
import functools

from flask import request, session
from flask_socketio import SocketIO, emit, join_room, leave_room

import services
from services import ChatError

logger = logging.getLogger('ChatSocket')

socketio = SocketIO()

# Track online users by sid
online_users = {}  # sid -> username


def room_channel(name):
    return f'room:{name}'


def user_channel(username):
    return f'user:{username}'


def sids_for(username):
    return [sid for sid, name in list(online_users.items()) if name == username]


# ===== OUTBOUND NOTIFICATIONS =====
def broadcast_online_users():
    socketio.emit('onlineUsers', {'users': sorted(set(online_users.values()))})


def notify_message(msg):
    data = msg.to_dict()
    if msg.room is not None:
        socketio.emit('roomMessage', data, to=room_channel(msg.room))
    else:
        socketio.emit('dmMessage', data, to=user_channel(msg.sender))
        socketio.emit('dmMessage', data, to=user_channel(msg.recipient))


def notify_message_edited(msg):
    _emit_for_target('messageEdited', msg.to_dict())


def notify_message_deleted(data):
    payload = {'id': data['id']}
    if 'room' in data:
        payload['room'] = data['room']
    else:
        payload['pair'] = data['pair']
    _emit_for_target('messageDeleted', payload, sender=data['from'], recipient=data.get('to'))


def _emit_for_target(event, payload, sender=None, recipient=None):
    if payload.get('room') is not None:
        socketio.emit(event, payload, to=room_channel(payload['room']))
        return
    sender = sender or payload.get('from')
    recipient = recipient or payload.get('to')
    for username in (sender, recipient):
        if username:
            socketio.emit(event, payload, to=user_channel(username))


def notify_friend_request(req):
    socketio.emit('friendRequest', req.to_dict(), to=user_channel(req.recipient))


def notify_friend_accepted(req):
    for username, friend in ((req.sender, req.recipient), (req.recipient, req.sender)):
        socketio.emit('friendAccepted', {'username': friend}, to=user_channel(username))


def notify_avatar(user):
    socketio.emit('avatarUpdated', {'username': user.username, 'avatar': user.avatar})


def remove_from_channel(username, room_name, event, text):
    """Pull every socket of username out of a room channel and tell them why."""
    channel = room_channel(room_name)
    for sid in sids_for(username):
        socketio.server.leave_room(sid, channel, namespace='/')
    socketio.emit(event, {'room': room_name}, to=user_channel(username))
    socketio.emit('systemMsg', {'room': room_name, 'text': text}, to=channel)


def notify_room_deleted(room_name):
    channel = room_channel(room_name)
    socketio.emit('roomDeleted', {'room': room_name}, to=channel)
    socketio.close_room(channel, namespace='/')


def disconnect_user(username):
    for sid in sids_for(username):
        socketio.server.disconnect(sid, namespace='/')


# ===== INBOUND EVENTS =====
def handles_errors(f):
    """Hand the handler a dict payload and report ChatError back to the calling socket only."""
    @functools.wraps(f)
    def wrapper(data=None, *extra):
        try:
            if data is None:
                data = {}
            if not isinstance(data, dict):
                raise ChatError('Invalid payload')
            return f(data)
        except ChatError as e:
            logger.info(f"Socket event {f.__name__} rejected for {online_users.get(request.sid)}: {e.message}")
            emit('errorMsg', {'message': e.message})
    return wrapper


def current_username():
    username = online_users.get(request.sid)
    if not username:
        raise ChatError('Not logged in', 401)
    return username


@socketio.on('connect')
def handle_connect(auth=None):
    username = session.get('username')
    user = services.find_user(username)
    if not user or user.banned:
        logger.warning("WebSocket connection refused: no valid session")
        return False
    logger.info(f"WebSocket connection established for {username}")
    online_users[request.sid] = username
    join_room(user_channel(username))
    emit('status', {'message': f'Welcome, {username}!'}, to=request.sid)
    broadcast_online_users()


@socketio.on('disconnect')
def handle_disconnect(*args):
    username = online_users.pop(request.sid, None)
    if username:
        logger.info(f"WebSocket disconnected for {username}")
        broadcast_online_users()


@socketio.on('joinRoomSocket')
@handles_errors
def handle_join_room(data):
    username = current_username()
    room, joined = services.join_room(username, data.get('room'), data.get('password'), data.get('invite'))
    join_room(room_channel(room.name))
    history = [m.to_dict() for m in services.room_history(username, room.name)]
    emit('chatHistory', {'room': room.name, 'history': history})
    if joined:
        emit('systemMsg', {'room': room.name, 'text': f'{username} joined {room.name}'},
             to=room_channel(room.name))


@socketio.on('leaveRoomSocket')
@handles_errors
def handle_leave_room(data):
    username = current_username()
    name = services.require_str(data.get('room'), 'room')
    if not name:
        raise ChatError('Missing room')
    leave_room(room_channel(name))
    emit('systemMsg', {'room': name, 'text': f'{username} left {name}'}, to=room_channel(name))


@socketio.on('sendRoomMessage')
@handles_errors
def handle_room_message(data):
    msg = services.post_room_message(current_username(), data.get('room'), data.get('text'))
    notify_message(msg)


@socketio.on('startDM')
@handles_errors
def handle_start_dm(data):
    username = current_username()
    other = data.get('withUser')
    if not other:
        raise ChatError('Missing withUser')
    history = [m.to_dict() for m in services.dm_history(username, other)]
    emit('chatHistory', {'withUser': other, 'history': history})


@socketio.on('sendDM')
@handles_errors
def handle_send_dm(data):
    msg = services.post_direct_message(current_username(), data.get('to'), data.get('text'))
    notify_message(msg)


@socketio.on('editMessage')
@handles_errors
def handle_edit_message(data):
    msg = services.edit_message(current_username(), data.get('id'), data.get('text'))
    notify_message_edited(msg)


@socketio.on('deleteMessage')
@handles_errors
def handle_delete_message(data):
    deleted = services.delete_message(current_username(), data.get('id'))
    notify_message_deleted(deleted)
