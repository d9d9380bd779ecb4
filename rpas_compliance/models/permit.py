"""
RPAS Compliance Platform
Permit / certificate model.

``status`` is derived from ``expiry_date`` on every write (see
services.expiry.permit_status) except ``suspended``, which is set by hand
and survives recalculation.
"""

from rpas_compliance.models import db
from rpas_compliance.models.base import OrganizationModel, iso, new_id
from rpas_compliance.services.expiry import days_until_expiry

PERMIT_TYPES = {
    "sfoc": {"label": "SFOC", "description": "Special Flight Operations Certificate"},
    "cor": {"label": "COR", "description": "Certificate of Recognition"},
    "land_access": {"label": "Land Access", "description": "Landowner or land manager permission"},
    "airspace_auth": {"label": "Airspace Authorization", "description": "NAV CANADA or controlled-airspace approval"},
    "client_approval": {"label": "Client Approval", "description": "Client site or operations approval"},
    "other": {"label": "Other", "description": "Other permit or certificate"},
}

PERMIT_STATUSES = {
    "active": {"label": "Active", "color": "green"},
    "expiring_soon": {"label": "Expiring Soon", "color": "amber"},
    "expired": {"label": "Expired", "color": "red"},
    "suspended": {"label": "Suspended", "color": "gray"},
}


class Permit(OrganizationModel):
    __tablename__ = "permits"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    type = db.Column(db.String(30), nullable=False, default="other")
    name = db.Column(db.String(300), nullable=False)
    permit_number = db.Column(db.String(100), default="")
    issuing_authority = db.Column(db.String(200), default="")
    issue_date = db.Column(db.Date, nullable=True)
    effective_date = db.Column(db.Date, nullable=True)
    expiry_date = db.Column(db.Date, nullable=True, index=True)
    status = db.Column(db.String(20), nullable=False, default="active")

    privileges = db.Column(db.JSON, default=list)
    conditions = db.Column(db.JSON, default=list)
    operation_types = db.Column(db.JSON, default=list)
    geographic_area = db.Column(db.String(300), default="")
    aircraft_registrations = db.Column(db.JSON, default=list)
    documents = db.Column(db.JSON, default=list)
    renewal_info = db.Column(db.JSON, default=dict)
    notes = db.Column(db.Text, default="")

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "type": self.type,
            "name": self.name,
            "permit_number": self.permit_number,
            "issuing_authority": self.issuing_authority,
            "issue_date": iso(self.issue_date),
            "effective_date": iso(self.effective_date),
            "expiry_date": iso(self.expiry_date),
            "days_until_expiry": days_until_expiry(self.expiry_date),
            "status": self.status,
            "privileges": self.privileges or [],
            "conditions": self.conditions or [],
            "operation_types": self.operation_types or [],
            "geographic_area": self.geographic_area,
            "aircraft_registrations": self.aircraft_registrations or [],
            "documents": self.documents or [],
            "renewal_info": self.renewal_info or {},
            "notes": self.notes,
            **self.audit_dict(),
        }

    def __repr__(self):
        return f"<Permit {self.id}: {self.name} [{self.status}]>"
