"""
Compliance matrix templates shipped with the platform.

SFOC_BVLOS_TEMPLATE: Transport Canada CAR 903.01(b) BVLOS compliance
matrix, 32 requirements in three sections (operations, equipment, crew).

Loaded by ``flask seed-compliance-templates``.
"""

_DOC = "document-reference"
_TEXT = "text"


def _req(number, category, short_text, text, *, response_type=_DOC, ref="CAR 903.02",
         required=True, validation_rules=None, guidance=""):
    return {
        "id": f"req-{number:03d}",
        "category": category,
        "order": number,
        "text": text,
        "short_text": short_text,
        "regulatory_ref": ref,
        "guidance": guidance,
        "response_type": response_type,
        "required": required,
        "validation_rules": validation_rules or [],
    }


SFOC_BVLOS_TEMPLATE = {
    "id": "sfoc-bvlos-903-01b",
    "name": "SFOC - BVLOS Operations",
    "short_name": "BVLOS SFOC",
    "description": (
        "Compliance checklist for CAR 903.01(b) - RPAS in Beyond Visual Line of Sight "
        "operations. Covers all Transport Canada requirements for BVLOS SFOC applications."
    ),
    "category": "sfoc",
    "regulatory_body": "Transport Canada",
    "regulation": "CAR 903.01(b)",
    "version": "2024-01",
    "effective_date": "2024-01-15",
    "categories": [
        {"id": "operations", "name": "RPAS Operation / Risk Assessment", "order": 1},
        {"id": "equipment", "name": "RPAS Equipment / Capability", "order": 2},
        {"id": "crew", "name": "Applicant / Operator / Pilot", "order": 3},
    ],
    "requirements": [
        # ── RPAS Operation / Risk Assessment ────────────────────────────
        _req(1, "operations", "Purpose of Operations / CONOPS",
             "As per CAR 903.02(d), describe in detail the purpose of the operations. "
             "Provide a CONOPS type document to cover scope of the proposed operation.",
             ref="CAR 903.02(d)",
             guidance="Include operational objectives, geographic scope, duration, aircraft "
                      "types and altitude ranges.",
             validation_rules=[
                 {"type": "requires_document", "doc_types": ["conops", "operations-manual"]},
                 {"type": "min_documents", "count": 1},
             ]),
        _req(2, "operations", "SORA Assessment & OSOs",
             "Provide the Specific Operational Risk Assessment (SORA), SAIL level and "
             "Appendix C - Operational Safety Objectives (OSOs) as detailed in AC 903-001.",
             ref="AC 903-001",
             validation_rules=[
                 {"type": "requires_project_data", "fields": ["sora.sail_level"]},
                 {"type": "requires_document", "doc_types": ["sora-report"]},
             ]),
        _req(3, "operations", "Area of Operation Description",
             "Provide a description of the area of operation, including geographic boundaries, "
             "airspace classification, and any airspace restrictions.",
             ref="CAR 903.02(d)"),
        _req(4, "operations", "Flight Profiles",
             "Provide details of the proposed flight profiles, including maximum altitude AGL, "
             "maximum distance from pilot, and flight duration.",
             ref="CAR 903.02(d)"),
        _req(5, "operations", "Situational Awareness Methods",
             "Describe the method(s) used to maintain situational awareness of other aircraft "
             "in the area of operation when operating BVLOS."),
        _req(6, "operations", "ATC Coordination Procedures",
             "Describe the procedures for coordination with NAV CANADA and/or the appropriate "
             "air traffic control authority."),
        _req(7, "operations", "Emergency Procedures",
             "Provide emergency procedures including loss of command and control link, "
             "fly-away, and other abnormal situations."),
        _req(8, "operations", "Crew Communication Procedures",
             "Describe the communication procedures between the pilot and any visual observers "
             "or other crew members."),
        _req(9, "operations", "Weather Minimums",
             "Provide weather minimums and limitations for the proposed operations."),
        _req(10, "operations", "Pre-flight Planning Procedures",
             "Describe the procedures for pre-flight planning and risk assessment for each "
             "operation."),
        # ── RPAS Equipment / Capability ─────────────────────────────────
        _req(11, "equipment", "RPAS Specifications",
             "Provide make, model, and specifications of the RPAS to be used, including MTOW, "
             "maximum speed, and endurance."),
        _req(12, "equipment", "C2 Link System",
             "Describe the command and control (C2) link system, including frequencies, range, "
             "and redundancy measures."),
        _req(13, "equipment", "Lost Link & RTH Procedures",
             "Describe the lost link procedures and automatic return-to-home (RTH) capabilities."),
        _req(14, "equipment", "Geo-fencing / Containment",
             "Describe any geo-fencing or containment systems used to prevent the RPAS from "
             "leaving the approved operational area."),
        _req(15, "equipment", "Navigation Systems",
             "Describe the RPAS navigation system(s) and any redundancy measures."),
        _req(16, "equipment", "Obstacle Detection & Avoidance",
             "Describe the method(s) used for detecting and avoiding obstacles during BVLOS "
             "flight."),
        _req(17, "equipment", "Ground-Based Surveillance",
             "Describe the method(s) used for ground-based surveillance of the RPAS during "
             "BVLOS operations."),
        _req(18, "equipment", "FTS / Parachute System",
             "Provide details of any flight termination system (FTS) or parachute recovery "
             "system (PRS) if applicable.",
             required=False),
        _req(19, "equipment", "Maintenance Program",
             "Describe the maintenance program for the RPAS and associated equipment."),
        _req(20, "equipment", "GCS Setup & Capabilities",
             "Describe the Ground Control Station (GCS) setup and capabilities."),
        # ── Applicant / Operator / Pilot ────────────────────────────────
        _req(21, "crew", "Applicant Information",
             "Provide details of the applicant organization, including company name, address, "
             "and primary contact.",
             response_type=_TEXT),
        _req(22, "crew", "RPAS Registration",
             "Provide Transport Canada RPAS registration number(s) for all aircraft to be used.",
             response_type=_TEXT, ref="CAR 901.03"),
        _req(23, "crew", "Pilot Certifications",
             "Provide pilot certification details for all pilots who will conduct BVLOS "
             "operations.",
             ref="CAR 901.54"),
        _req(24, "crew", "Pilot Training Requirements",
             "Describe the training and experience requirements for pilots conducting BVLOS "
             "operations."),
        _req(25, "crew", "Crew Roles & Responsibilities",
             "Describe the roles and responsibilities of all crew members involved in BVLOS "
             "operations."),
        _req(26, "crew", "Visual Observer Training",
             "Describe the training requirements and qualifications for visual observers.",
             ref="CAR 901.70"),
        _req(27, "crew", "Operations Manual",
             "Provide a copy of the Operations Manual or relevant sections covering BVLOS "
             "procedures.",
             validation_rules=[{"type": "requires_document", "doc_types": ["operations-manual"]}]),
        _req(28, "crew", "Safety Management System",
             "Describe the Safety Management System (SMS) or safety culture within the "
             "organization."),
        _req(29, "crew", "Insurance Coverage",
             "Provide evidence of liability insurance coverage appropriate for BVLOS operations.",
             validation_rules=[{"type": "requires_document", "doc_types": ["insurance-certificate"]}]),
        _req(30, "crew", "SFOC / BVLOS Experience",
             "Describe any previous SFOC history or BVLOS operational experience.",
             response_type=_TEXT, required=False),
        _req(31, "crew", "SFOC Validity Period",
             "Provide proposed SFOC validity period and operational dates.",
             response_type=_TEXT),
        _req(32, "crew", "Compliance Monitoring",
             "Describe how compliance with SFOC conditions will be monitored and maintained."),
    ],
    "export_format": {
        "type": "matrix",
        "columns": ["requirement", "response", "document_ref"],
        "include_guidance": False,
        "tc_form_number": "26-0835",
    },
    "related_templates": ["sfoc-25kg-903-01a", "sfoc-night-ops"],
    "status": "active",
    "is_public": True,
}

DEFAULT_TEMPLATES = [SFOC_BVLOS_TEMPLATE]
