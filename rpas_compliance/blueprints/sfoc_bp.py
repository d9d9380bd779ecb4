"""
RPAS Compliance Platform
SFOC blueprint: Special Flight Operations Certificate applications.

Endpoints summary:
    APPLICATION  /api/v1/sfoc/applications                        GET, POST
                 /api/v1/sfoc/applications/<id>                   GET, PUT, DELETE
                 /api/v1/sfoc/applications/<id>/status            PATCH, GET (available)
                 /api/v1/sfoc/applications/<id>/sora              PUT
                 /api/v1/sfoc/applications/<id>/manufacturer-declaration  PUT

    CHECKLIST    /api/v1/sfoc/applications/<id>/documents         GET
                 /api/v1/sfoc/applications/<id>/documents/<did>   PATCH
                 /api/v1/sfoc/applications/<id>/documents/<did>/upload  POST
                 /api/v1/sfoc/applications/<id>/progress          GET

    COMMS        /api/v1/sfoc/applications/<id>/communications    GET, POST
    ACTIVITY     /api/v1/sfoc/applications/<id>/activity          GET, POST

    DASHBOARD    /api/v1/sfoc/stats                               GET
                 /api/v1/sfoc/reference                           GET

Every route except /reference requires organization_id (query or body).
Service exceptions are rendered by the app-wide error handlers.
"""

import logging

from flask import Blueprint, jsonify, request

from rpas_compliance.services import sfoc_service
from rpas_compliance.utils.helpers import actor, organization_required

logger = logging.getLogger(__name__)

sfoc_bp = Blueprint("sfoc", __name__, url_prefix="/api/v1/sfoc")


def _body() -> dict:
    return request.get_json(silent=True) or {}


# ═══════════════════════════════════════════════════════════════════════════
#  APPLICATIONS
# ═══════════════════════════════════════════════════════════════════════════

@sfoc_bp.route("/applications", methods=["GET"])
def list_applications():
    oid, err = organization_required()
    if err:
        return err
    limit = request.args.get("limit", 100, type=int)
    apps = sfoc_service.list_applications(oid, status=request.args.get("status"), limit=limit)
    return jsonify({"items": [a.to_dict() for a in apps], "total": len(apps)})


@sfoc_bp.route("/applications", methods=["POST"])
def create_application():
    oid, err = organization_required()
    if err:
        return err
    application = sfoc_service.create_application(oid, _body(), user=actor())
    return jsonify(application.to_dict()), 201


@sfoc_bp.route("/applications/<app_id>", methods=["GET"])
def get_application(app_id):
    oid, err = organization_required()
    if err:
        return err
    return jsonify(sfoc_service.get_application(oid, app_id).to_dict())


@sfoc_bp.route("/applications/<app_id>", methods=["PUT"])
def update_application(app_id):
    oid, err = organization_required()
    if err:
        return err
    data = {k: v for k, v in _body().items() if k != "organization_id"}
    application = sfoc_service.update_application(oid, app_id, data, user=actor())
    return jsonify(application.to_dict())


@sfoc_bp.route("/applications/<app_id>", methods=["DELETE"])
def delete_application(app_id):
    oid, err = organization_required()
    if err:
        return err
    sfoc_service.delete_application(oid, app_id)
    return jsonify({"message": "SFOC application deleted"})


@sfoc_bp.route("/applications/<app_id>/status", methods=["PATCH"])
def change_status(app_id):
    oid, err = organization_required()
    if err:
        return err
    data = _body()
    new_status = data.get("status")
    if not new_status:
        return jsonify({"error": "status is required"}), 400
    application = sfoc_service.change_status(
        oid, app_id, new_status,
        user=actor(),
        updates=data.get("updates") or {},
        notes=data.get("notes") or "",
    )
    return jsonify(application.to_dict())


@sfoc_bp.route("/applications/<app_id>/status", methods=["GET"])
def available_transitions(app_id):
    oid, err = organization_required()
    if err:
        return err
    return jsonify(sfoc_service.transitions_for(oid, app_id))


@sfoc_bp.route("/applications/<app_id>/sora", methods=["PUT"])
def link_sora(app_id):
    oid, err = organization_required()
    if err:
        return err
    data = _body()
    if not data.get("sora_assessment_id"):
        return jsonify({"error": "sora_assessment_id is required"}), 400
    application = sfoc_service.link_sora(
        oid, app_id, data["sora_assessment_id"], data.get("sora_summary"), user=actor(),
    )
    return jsonify(application.to_dict())


@sfoc_bp.route("/applications/<app_id>/manufacturer-declaration", methods=["PUT"])
def link_manufacturer_declaration(app_id):
    oid, err = organization_required()
    if err:
        return err
    declaration_id = _body().get("declaration_id")
    if not declaration_id:
        return jsonify({"error": "declaration_id is required"}), 400
    application = sfoc_service.link_manufacturer_declaration(oid, app_id, declaration_id, user=actor())
    return jsonify(application.to_dict())


# ═══════════════════════════════════════════════════════════════════════════
#  DOCUMENT CHECKLIST
# ═══════════════════════════════════════════════════════════════════════════

@sfoc_bp.route("/applications/<app_id>/documents", methods=["GET"])
def list_documents(app_id):
    oid, err = organization_required()
    if err:
        return err
    items = sfoc_service.list_documents(oid, app_id)
    return jsonify({"items": [d.to_dict() for d in items], "total": len(items)})


@sfoc_bp.route("/applications/<app_id>/documents/<doc_id>", methods=["PATCH"])
def update_document(app_id, doc_id):
    oid, err = organization_required()
    if err:
        return err
    item = sfoc_service.update_document(oid, app_id, doc_id, _body(), user=actor())
    return jsonify(item.to_dict())


@sfoc_bp.route("/applications/<app_id>/documents/<doc_id>/upload", methods=["POST"])
def upload_document(app_id, doc_id):
    oid, err = organization_required()
    if err:
        return err
    item = sfoc_service.upload_document_file(oid, app_id, doc_id, _body(), user=actor())
    return jsonify(item.to_dict())


@sfoc_bp.route("/applications/<app_id>/progress", methods=["GET"])
def checklist_progress(app_id):
    oid, err = organization_required()
    if err:
        return err
    return jsonify(sfoc_service.checklist_progress(oid, app_id))


# ═══════════════════════════════════════════════════════════════════════════
#  COMMUNICATIONS & ACTIVITY
# ═══════════════════════════════════════════════════════════════════════════

@sfoc_bp.route("/applications/<app_id>/communications", methods=["GET"])
def list_communications(app_id):
    oid, err = organization_required()
    if err:
        return err
    items = sfoc_service.list_communications(oid, app_id)
    return jsonify({"items": [c.to_dict() for c in items], "total": len(items)})


@sfoc_bp.route("/applications/<app_id>/communications", methods=["POST"])
def add_communication(app_id):
    oid, err = organization_required()
    if err:
        return err
    communication = sfoc_service.add_communication(oid, app_id, _body(), user=actor())
    return jsonify(communication.to_dict()), 201


@sfoc_bp.route("/applications/<app_id>/activity", methods=["GET"])
def list_activity(app_id):
    oid, err = organization_required()
    if err:
        return err
    limit = request.args.get("limit", 50, type=int)
    items = sfoc_service.list_activity(oid, app_id, limit=limit)
    return jsonify({"items": [a.to_dict() for a in items], "total": len(items)})


@sfoc_bp.route("/applications/<app_id>/activity", methods=["POST"])
def add_activity(app_id):
    oid, err = organization_required()
    if err:
        return err
    entry = sfoc_service.add_activity(oid, app_id, _body(), user=actor())
    return jsonify(entry.to_dict()), 201


# ═══════════════════════════════════════════════════════════════════════════
#  DASHBOARD
# ═══════════════════════════════════════════════════════════════════════════

@sfoc_bp.route("/stats", methods=["GET"])
def stats():
    oid, err = organization_required()
    if err:
        return err
    return jsonify(sfoc_service.get_stats(oid))


@sfoc_bp.route("/reference", methods=["GET"])
def reference():
    return jsonify(sfoc_service.reference_data())
