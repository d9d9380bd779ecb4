"""
RPAS Compliance Platform
Collaboration blueprint: comments and the activity feed.

Endpoints summary:
    COMMENT   /api/v1/comments                          GET (?entity_type&entity_id&resolved), POST
              /api/v1/comments/<id>/resolve             POST  (toggle)
              /api/v1/comments/<id>/pin                 POST  (toggle)
              /api/v1/comments/<id>                     DELETE

    ACTIVITY  /api/v1/activities                        GET (?entity_type&entity_id), POST
"""

from flask import Blueprint, jsonify, request

from rpas_compliance.services import collaboration_service
from rpas_compliance.utils.helpers import actor, organization_required

collaboration_bp = Blueprint("collaboration", __name__, url_prefix="/api/v1")


def _resolved_filter():
    raw = request.args.get("resolved")
    if raw is None or raw == "":
        return None
    return raw.lower() in ("1", "true", "yes")


@collaboration_bp.route("/comments", methods=["GET"])
def list_comments():
    oid, err = organization_required()
    if err:
        return err
    comments = collaboration_service.list_comments(
        oid,
        request.args.get("entity_type"),
        request.args.get("entity_id"),
        resolved=_resolved_filter(),
    )
    return jsonify({"items": [c.to_dict() for c in comments], "total": len(comments)})


@collaboration_bp.route("/comments", methods=["POST"])
def create_comment():
    oid, err = organization_required()
    if err:
        return err
    comment = collaboration_service.create_comment(oid, request.get_json(silent=True) or {}, user=actor())
    return jsonify(comment.to_dict()), 201


@collaboration_bp.route("/comments/<comment_id>/resolve", methods=["POST"])
def toggle_resolved(comment_id):
    oid, err = organization_required()
    if err:
        return err
    return jsonify(collaboration_service.toggle_resolved(oid, comment_id, user=actor()).to_dict())


@collaboration_bp.route("/comments/<comment_id>/pin", methods=["POST"])
def toggle_pinned(comment_id):
    oid, err = organization_required()
    if err:
        return err
    return jsonify(collaboration_service.toggle_pinned(oid, comment_id).to_dict())


@collaboration_bp.route("/comments/<comment_id>", methods=["DELETE"])
def delete_comment(comment_id):
    oid, err = organization_required()
    if err:
        return err
    collaboration_service.delete_comment(oid, comment_id)
    return jsonify({"message": "Comment deleted"})


@collaboration_bp.route("/activities", methods=["GET"])
def list_activities():
    oid, err = organization_required()
    if err:
        return err
    limit = request.args.get("limit", 50, type=int)
    entity_type = request.args.get("entity_type")
    entity_id = request.args.get("entity_id")
    if entity_type and entity_id:
        items = collaboration_service.list_entity_activity(oid, entity_type, entity_id, limit=limit)
    else:
        items = collaboration_service.list_organization_activity(oid, limit=limit, entity_type=entity_type)
    return jsonify({"items": [a.to_dict() for a in items], "total": len(items)})


@collaboration_bp.route("/activities", methods=["POST"])
def record_activity():
    oid, err = organization_required()
    if err:
        return err
    entry = collaboration_service.record_activity(oid, request.get_json(silent=True) or {}, user=actor())
    return jsonify(entry.to_dict()), 201
