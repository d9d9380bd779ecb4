"""
Default master Formal Hazard Assessments.

Loaded (published) by ``flask seed-master-hazards``. Existing fha_numbers
are skipped, so the command is safe to re-run.
"""


def _cm(type_, description, responsible="PIC"):
    return {"type": type_, "description": description, "responsible": responsible}


DEFAULT_MASTER_HAZARDS = [
    {
        "fha_number": "FHA-1.9",
        "title": "Working Alone",
        "category": "personnel",
        "description": (
            "Hazard assessment for solo RPAS operations where a single crew member operates "
            "without immediate support or supervision."
        ),
        "consequences": (
            "Delayed response to medical emergencies, inability to manage equipment failures, "
            "increased workload errors, fatigue-related incidents."
        ),
        "likelihood": 3,
        "severity": 4,
        "control_measures": [
            _cm("administrative", "Working alone plan filed with operations base before deployment"),
            _cm("administrative", "Regular check-in schedule (minimum every 30 minutes)"),
            _cm("administrative", "Automatic man-down alert device worn"),
            _cm("ppe", "First aid kit and personal protective equipment available"),
            _cm("administrative", "Maximum solo flight duration limits enforced (4 hours)",
                "Operations Manager"),
        ],
        "residual_likelihood": 2,
        "residual_severity": 3,
        "keywords": ["solo", "alone", "single operator", "check-in", "man-down"],
        "regulatory_refs": ["OH&S Working Alone Regulations", "CARs 901"],
        "applicable_operations": ["Survey operations", "Inspection flights", "Monitoring"],
    },
    {
        "fha_number": "FHA-2.5",
        "title": "Standard Flight Operations",
        "category": "flight_ops",
        "description": (
            "Hazard assessment for standard VLOS flight operations including takeoff, flight, "
            "and landing procedures under normal conditions."
        ),
        "consequences": (
            "Aircraft loss of control, flyaway, collision with obstacles, injury to crew or "
            "bystanders, property damage."
        ),
        "likelihood": 2,
        "severity": 4,
        "control_measures": [
            _cm("administrative", "Flight area surveyed and obstacles identified"),
            _cm("administrative", "Visual observers positioned for complete airspace coverage"),
            _cm("engineering", "Return-to-home settings verified and tested"),
            _cm("administrative", "Minimum safe distances maintained from people and obstacles"),
            _cm("engineering", "Geofencing enabled for flight area boundaries"),
        ],
        "residual_likelihood": 1,
        "residual_severity": 3,
        "keywords": ["VLOS", "standard", "flight", "takeoff", "landing", "operations"],
        "regulatory_refs": ["CARs 901.24", "CARs 901.25"],
        "applicable_operations": ["Standard VLOS operations"],
    },
    {
        "fha_number": "FHA-2.6",
        "title": "Post-Flight Procedures",
        "category": "flight_ops",
        "description": (
            "Hazard assessment for post-flight activities including aircraft shutdown, battery "
            "removal, equipment inspection, and data handling."
        ),
        "consequences": (
            "Battery thermal events, equipment damage from improper storage, data loss, injury "
            "during equipment handling."
        ),
        "likelihood": 2,
        "severity": 3,
        "control_measures": [
            _cm("administrative", "Post-flight checklist completion mandatory"),
            _cm("administrative", "Allow motors to cool before handling aircraft"),
            _cm("engineering", "Battery inspection for damage, swelling, or heat"),
            _cm("administrative", "Data backup procedures followed"),
        ],
        "residual_likelihood": 1,
        "residual_severity": 2,
        "keywords": ["post-flight", "shutdown", "battery", "storage", "data", "inspection"],
        "regulatory_refs": ["CARs 901", "Manufacturer guidelines"],
        "applicable_operations": ["All RPAS operations"],
    },
    {
        "fha_number": "FHA-2.7",
        "title": "BVLOS Operations",
        "category": "flight_ops",
        "description": (
            "Hazard assessment for Beyond Visual Line of Sight operations conducted under a "
            "Level 1 Complex RPOC or an SFOC."
        ),
        "consequences": (
            "Loss of aircraft awareness, collision with manned aircraft, inability to detect "
            "obstacles, extended emergency response time."
        ),
        "likelihood": 3,
        "severity": 5,
        "control_measures": [
            _cm("administrative", "Valid BVLOS authorization (SFOC or Level 1 Complex RPOC) obtained",
                "Operations Manager"),
            _cm("engineering", "Detect and Avoid (DAA) system operational and tested"),
            _cm("engineering", "Redundant command and control links verified"),
            _cm("administrative", "ATC coordination completed where required"),
            _cm("administrative", "Lost link procedures tested and understood", "All Crew"),
        ],
        "residual_likelihood": 2,
        "residual_severity": 4,
        "keywords": ["BVLOS", "beyond visual", "DAA", "detect avoid", "lost link", "RPOC"],
        "regulatory_refs": ["CARs 901 SFOC", "BVLOS Authorization", "Level 1 Complex RPOC"],
        "applicable_operations": ["BVLOS surveys", "Linear inspections", "Extended range operations"],
    },
    {
        "fha_number": "FHA-4.3",
        "title": "Battery Handling and Charging",
        "category": "equipment",
        "description": (
            "Hazard assessment for LiPo/Li-ion battery handling, charging, storage, and "
            "transportation."
        ),
        "consequences": "Battery fire, thermal runaway, chemical burns, explosion, property damage.",
        "likelihood": 2,
        "severity": 5,
        "control_measures": [
            _cm("engineering", "Fireproof battery charging bags/containers used"),
            _cm("administrative", "Battery inspection before each charge cycle"),
            _cm("engineering", "Fire extinguisher (Class D or appropriate) available"),
            _cm("administrative", "Damaged batteries quarantined and disposed properly"),
        ],
        "residual_likelihood": 1,
        "residual_severity": 4,
        "keywords": ["battery", "LiPo", "charging", "fire", "thermal runaway", "storage"],
        "regulatory_refs": ["TDG Regulations", "Manufacturer Guidelines"],
        "applicable_operations": ["All RPAS operations"],
    },
]
