from flask import request
from flask_login import current_user
from flask_socketio import join_room, leave_room, emit
from typing import Dict

from peekachoo.notifications import GLOBAL_ROOM, NAMESPACE, user_room

# sid -> user id for sockets that subscribed to their personal room
_sid_to_user: Dict[str, int] = {}
_online_count: Dict[int, int] = {}


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def is_user_online(user_id: int) -> bool:
    return _online_count.get(user_id, 0) > 0


def handle_connect():
    join_room(GLOBAL_ROOM)
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_disconnect(*args):
    user_id = _sid_to_user.pop(_get_sid(), None)
    if user_id is None:
        return
    remaining = max(0, _online_count.get(user_id, 0) - 1)
    if remaining:
        _online_count[user_id] = remaining
    else:
        _online_count.pop(user_id, None)


def handle_subscribe(data=None):
    """Join the caller's personal room so score events reach this socket.

    Only a logged-in user may subscribe, and only to their own room.
    """
    if not current_user.is_authenticated:
        emit('error', {'message': 'Authentication required'})
        return
    user_id = current_user.id
    requested = (data or {}).get('user_id')
    if requested is not None and str(requested) != str(user_id):
        emit('error', {'message': "Cannot subscribe to another player's events"})
        return
    sid = _get_sid()
    previous = _sid_to_user.get(sid)
    if previous == user_id:
        emit('subscribed', {'room': user_room(user_id)})
        return
    if previous is not None:
        leave_room(user_room(previous))
        handle_disconnect()
    join_room(user_room(user_id))
    _sid_to_user[sid] = user_id
    _online_count[user_id] = _online_count.get(user_id, 0) + 1
    emit('subscribed', {'room': user_room(user_id)})


def handle_unsubscribe(data=None):
    user_id = _sid_to_user.get(_get_sid())
    if user_id is None:
        emit('error', {'message': 'Not subscribed'})
        return
    leave_room(user_room(user_id))
    handle_disconnect()
    emit('unsubscribed', {'room': user_room(user_id)})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    from peekachoo import socketio

    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
        socketio.on_event('subscribe', handle_subscribe, namespace=namespace)
        socketio.on_event('unsubscribe', handle_unsubscribe, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
