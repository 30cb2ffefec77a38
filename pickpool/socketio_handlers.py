"""
SocketIO Event Handlers for Real-time Leaderboard Updates

Clients subscribe to a (scope, period key) room on the /leaderboard namespace
and are told when a recompute has committed new standings for it.
"""

import logging

from flask import request
from flask_socketio import emit, join_room, leave_room

from pickpool import socketio

logger = logging.getLogger(__name__)

NAMESPACE = "/leaderboard"

# Track connected clients and their subscriptions
connected_clients = {}


def leaderboard_room(scope, period_key):
    return f"leaderboard_{scope}_{period_key}"


@socketio.on("connect", namespace=NAMESPACE)
def on_connect():
    """Handle client connection to the leaderboard namespace"""
    client_id = request.sid
    connected_clients[client_id] = {"subscriptions": set()}
    logger.info(f"Client connected to {NAMESPACE}: {client_id}")


@socketio.on("disconnect", namespace=NAMESPACE)
def on_disconnect():
    """Handle client disconnection from the leaderboard namespace"""
    client_id = request.sid
    if connected_clients.pop(client_id, None) is not None:
        logger.info(f"Client disconnected from {NAMESPACE}: {client_id}")


@socketio.on("subscribe_leaderboard", namespace=NAMESPACE)
def on_subscribe_leaderboard(data):
    """Subscribe to one leaderboard and receive its current standings"""
    from pickpool.errors import PickPoolError
    from pickpool.services.pool_service import get_leaderboard

    client_id = request.sid
    scope = (data or {}).get("scope")
    period_key = (data or {}).get("period_key")
    if client_id not in connected_clients or not scope or not period_key:
        return

    try:
        payload = get_leaderboard(scope, period_key)
    except PickPoolError as e:
        emit("leaderboard_error", e.to_dict())
        return

    room_name = leaderboard_room(scope, period_key)
    if room_name not in connected_clients[client_id]["subscriptions"]:
        connected_clients[client_id]["subscriptions"].add(room_name)
        join_room(room_name)
        logger.debug(f"Client {client_id} subscribed to {room_name}")

    emit("leaderboard_snapshot", payload)


@socketio.on("unsubscribe_leaderboard", namespace=NAMESPACE)
def on_unsubscribe_leaderboard(data):
    """Unsubscribe from one leaderboard"""
    client_id = request.sid
    scope = (data or {}).get("scope")
    period_key = (data or {}).get("period_key")
    if client_id not in connected_clients or not scope or not period_key:
        return

    room_name = leaderboard_room(scope, period_key)
    connected_clients[client_id]["subscriptions"].discard(room_name)
    leave_room(room_name)
    logger.debug(f"Client {client_id} unsubscribed from {room_name}")


def broadcast_leaderboard_update(scope, period_key):
    """Tell subscribers a leaderboard has new committed standings"""
    try:
        socketio.emit(
            "leaderboard_updated",
            {"scope": scope, "period_key": period_key},
            room=leaderboard_room(scope, period_key),
            namespace=NAMESPACE,
        )
        logger.debug(f"Broadcast leaderboard update for {scope} {period_key}")
    except Exception as e:
        # Standings are already committed; a missed push only delays clients
        logger.error(f"Error broadcasting leaderboard update: {e}")


def get_connection_stats():
    """Get connection statistics"""
    return {
        "connected_clients": len(connected_clients),
        "subscriptions": sum(
            len(client["subscriptions"]) for client in connected_clients.values()
        ),
    }
