# Overview: Flask API routes for the polled notification feed.

from flask import Blueprint, request, jsonify, g

from ..decorators import api_errors, require_actor
from ..services import notification_service
from ..validation import parse_bool


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@notifications_bp.get("/")
@api_errors
@require_actor()
def feed_route():
    """
    Feed for the acting user (X-User-Id or ?user_id=): own notifications
    plus broadcasts, unread first, newest first.
    """
    limit = request.args.get("limit", type=int)
    notifications = notification_service.get_feed(
        g.current_user.id,
        limit=max(1, min(limit, 200)) if limit else None,
        unread_only=parse_bool(request.args.get("unread", "false")),
    )
    return jsonify({
        "notifications": [n.to_dict() for n in notifications],
        "unread": notification_service.unread_count(g.current_user.id),
    }), 200


@notifications_bp.get("/unread-count")
@api_errors
@require_actor()
def unread_count_route():
    return jsonify({"unread": notification_service.unread_count(g.current_user.id)}), 200


@notifications_bp.put("/<int:notification_id>/read")
@api_errors
@require_actor()
def mark_read_route(notification_id: int):
    notification = notification_service.mark_read(notification_id, g.current_user.id)
    return jsonify({"notification": notification.to_dict()}), 200


@notifications_bp.put("/read-all")
@api_errors
@require_actor()
def mark_all_read_route():
    updated = notification_service.mark_all_read(g.current_user.id)
    return jsonify({"updated": updated}), 200


@notifications_bp.delete("/<int:notification_id>")
@api_errors
@require_actor()
def delete_notification_route(notification_id: int):
    notification_service.delete_notification(notification_id, g.current_user.id)
    return jsonify({"deleted": True, "notification_id": notification_id}), 200
