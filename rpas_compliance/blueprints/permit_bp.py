"""
RPAS Compliance Platform
Permit blueprint.

Endpoints summary:
    /api/v1/permits                          GET, POST
    /api/v1/permits/<id>                     GET, PUT, DELETE
    /api/v1/permits/<id>/suspend             POST
    /api/v1/permits/<id>/reinstate           POST
    /api/v1/permits/<id>/conditions          POST
    /api/v1/permits/<id>/privileges          POST
    /api/v1/permits/metrics                  GET
    /api/v1/permits/upcoming-expiries        GET   (?days=90)
    /api/v1/permits/refresh-statuses         POST
    /api/v1/permits/reference                GET
"""

from flask import Blueprint, jsonify, request

from rpas_compliance.services import permit_service
from rpas_compliance.utils.helpers import actor, organization_required

permit_bp = Blueprint("permits", __name__, url_prefix="/api/v1/permits")


def _body() -> dict:
    return request.get_json(silent=True) or {}


@permit_bp.route("", methods=["GET"])
def list_permits():
    oid, err = organization_required()
    if err:
        return err
    permits = permit_service.list_permits(oid, type=request.args.get("type"),
                                          status=request.args.get("status"))
    return jsonify({"items": [p.to_dict() for p in permits], "total": len(permits)})


@permit_bp.route("", methods=["POST"])
def create_permit():
    oid, err = organization_required()
    if err:
        return err
    permit = permit_service.create_permit(oid, _body(), user=actor())
    return jsonify(permit.to_dict()), 201


@permit_bp.route("/metrics", methods=["GET"])
def metrics():
    oid, err = organization_required()
    if err:
        return err
    return jsonify(permit_service.get_metrics(oid))


@permit_bp.route("/upcoming-expiries", methods=["GET"])
def upcoming_expiries():
    oid, err = organization_required()
    if err:
        return err
    events = permit_service.upcoming_expiry_events(oid, days=request.args.get("days", 90, type=int))
    return jsonify({"items": events, "total": len(events)})


@permit_bp.route("/refresh-statuses", methods=["POST"])
def refresh_statuses():
    oid, err = organization_required()
    if err:
        return err
    return jsonify({"changed": permit_service.refresh_statuses(oid)})


@permit_bp.route("/reference", methods=["GET"])
def reference():
    return jsonify(permit_service.reference_data())


@permit_bp.route("/<permit_id>", methods=["GET"])
def get_permit(permit_id):
    oid, err = organization_required()
    if err:
        return err
    return jsonify(permit_service.get_permit(oid, permit_id).to_dict())


@permit_bp.route("/<permit_id>", methods=["PUT"])
def update_permit(permit_id):
    oid, err = organization_required()
    if err:
        return err
    data = {k: v for k, v in _body().items() if k != "organization_id"}
    permit = permit_service.update_permit(oid, permit_id, data, user=actor())
    return jsonify(permit.to_dict())


@permit_bp.route("/<permit_id>", methods=["DELETE"])
def delete_permit(permit_id):
    oid, err = organization_required()
    if err:
        return err
    permit_service.delete_permit(oid, permit_id)
    return jsonify({"message": "Permit deleted"})


@permit_bp.route("/<permit_id>/suspend", methods=["POST"])
def suspend_permit(permit_id):
    oid, err = organization_required()
    if err:
        return err
    permit = permit_service.suspend_permit(oid, permit_id, reason=_body().get("reason") or "", user=actor())
    return jsonify(permit.to_dict())


@permit_bp.route("/<permit_id>/reinstate", methods=["POST"])
def reinstate_permit(permit_id):
    oid, err = organization_required()
    if err:
        return err
    return jsonify(permit_service.reinstate_permit(oid, permit_id, user=actor()).to_dict())


@permit_bp.route("/<permit_id>/conditions", methods=["POST"])
def add_condition(permit_id):
    oid, err = organization_required()
    if err:
        return err
    return jsonify(permit_service.add_condition(oid, permit_id, _body(), user=actor()).to_dict()), 201


@permit_bp.route("/<permit_id>/privileges", methods=["POST"])
def add_privilege(permit_id):
    oid, err = organization_required()
    if err:
        return err
    return jsonify(permit_service.add_privilege(oid, permit_id, _body(), user=actor()).to_dict()), 201
