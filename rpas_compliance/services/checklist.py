"""
Requirement checklist resolution and completion maths.

The SFOC document catalog is a static list of ``RequirementTemplate``
entries. When an application is created every entry is materialised as a
checklist item: required entries start at ``not_started``, the rest at
``not_applicable``. The checklist therefore always has exactly one item
per catalog entry.

Requirement rule (evaluated per entry):
    1. ``required is True``  -> required, unconditionally.
    2. otherwise ``required_for`` applies: required when it shares an id
       with the selected triggers or names the resolved complexity.
    3. ``required_if`` then gates on a boolean option of the payload
       (e.g. ``parachute_equipped``).
"""

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from rpas_compliance.core.exceptions import ValidationError

COUNTED_STATUSES = frozenset({"approved", "uploaded"})
NOT_APPLICABLE = "not_applicable"


@dataclass(frozen=True)
class RequirementTemplate:
    id: str
    category: str
    label: str
    description: str = ""
    required: bool | str = True          # True | False | "conditional"
    required_for: tuple[str, ...] = ()   # trigger ids and/or complexity ids
    required_if: str | None = None       # payload option name

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "label": self.label,
            "description": self.description,
            "required": self.required,
            "required_for": list(self.required_for),
            "required_if": self.required_if,
        }


def determine_complexity(triggers: Iterable[str], trigger_complexity: Mapping[str, str]) -> str:
    """Any trigger classed ``high`` makes the whole application ``high``."""
    unknown = [t for t in triggers if t not in trigger_complexity]
    if unknown:
        raise ValidationError(
            f"Unknown operation trigger(s): {', '.join(sorted(unknown))}",
            details={"operation_triggers": unknown},
        )
    if any(trigger_complexity[t] == "high" for t in triggers):
        return "high"
    return "medium"


def is_required(
    template: RequirementTemplate,
    triggers: Iterable[str],
    complexity: str,
    options: Mapping | None = None,
) -> bool:
    options = options or {}
    if template.required is True:
        required = True
    elif template.required_for:
        selected = set(triggers) | {complexity}
        required = bool(selected.intersection(template.required_for))
    else:
        # Optional entries with only an option gate become required when it is set
        required = template.required_if is not None

    if required and template.required_if is not None:
        required = bool(options.get(template.required_if))
    return required


def resolve_requirements(
    catalog: Iterable[RequirementTemplate],
    triggers: Iterable[str],
    complexity: str,
    options: Mapping | None = None,
) -> list[dict]:
    """Return one checklist-item payload per catalog entry, in catalog order."""
    triggers = list(triggers)
    items = []
    for template in catalog:
        required = is_required(template, triggers, complexity, options)
        items.append({
            "requirement_id": template.id,
            "category": template.category,
            "label": template.label,
            "description": template.description,
            "is_required": required,
            "status": "not_started" if required else NOT_APPLICABLE,
        })
    return items


def _field(item, name):
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percent_complete(items: Iterable) -> int:
    """
    Share of required, applicable items that are approved or uploaded.

    Items may be mappings or objects exposing ``status`` and ``is_required``.
    An empty denominator means nothing is outstanding: 100.
    """
    total = 0
    done = 0
    for item in items:
        if not _field(item, "is_required") or _field(item, "status") == NOT_APPLICABLE:
            continue
        total += 1
        if _field(item, "status") in COUNTED_STATUSES:
            done += 1
    if total == 0:
        return 100
    return round_half_up(100 * done / total)


def checklist_summary(items: Iterable) -> dict:
    """Counts per status plus required/complete totals for dashboards."""
    items = list(items)
    by_status: dict[str, int] = {}
    for item in items:
        status = _field(item, "status")
        by_status[status] = by_status.get(status, 0) + 1
    required = [
        i for i in items
        if _field(i, "is_required") and _field(i, "status") != NOT_APPLICABLE
    ]
    return {
        "total": len(items),
        "required": len(required),
        "complete": sum(1 for i in required if _field(i, "status") in COUNTED_STATUSES),
        "by_status": by_status,
        "percent_complete": percent_complete(items),
    }
