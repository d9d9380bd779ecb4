"""
Status registries and transition validation.

A registry is an immutable table of ``StatusDef`` records, one per status,
each carrying its display metadata and the allow-list of statuses it may
move to. Every workflow entity (SFOC application, checklist item,
compliance application, master hazard) owns exactly one registry, and
every status change goes through ``enforce_transition``.

Usage:
    from rpas_compliance.services.workflow import StatusDef, build_registry

    ORDER_STATUSES = build_registry("order", [
        StatusDef("open", "Open", allowed_next=("closed",)),
        StatusDef("closed", "Closed"),
    ])
    validate_transition("open", "closed", ORDER_STATUSES)["valid"]  # True
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from rpas_compliance.core.exceptions import ConfigurationError, InvalidTransitionError


@dataclass(frozen=True)
class StatusDef:
    key: str
    label: str
    color: str = "gray"
    description: str = ""
    allowed_next: tuple[str, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return not self.allowed_next

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "label": self.label,
            "color": self.color,
            "description": self.description,
            "allowed_next": list(self.allowed_next),
            "is_terminal": self.is_terminal,
        }


@dataclass(frozen=True)
class StatusRegistry:
    """Read-only status table for one entity type."""

    name: str
    statuses: Mapping[str, StatusDef]

    def __contains__(self, key) -> bool:
        return key in self.statuses

    def __iter__(self):
        return iter(self.statuses)

    def __len__(self) -> int:
        return len(self.statuses)

    def get(self, key: str) -> StatusDef | None:
        return self.statuses.get(key)

    def to_list(self) -> list[dict]:
        return [s.to_dict() for s in self.statuses.values()]


def build_registry(name: str, definitions: Iterable[StatusDef]) -> StatusRegistry:
    """Assemble and validate a registry.

    Raises:
        ConfigurationError: duplicate keys, or an allow-list naming a status
            the registry does not define.
    """
    table: dict[str, StatusDef] = {}
    for definition in definitions:
        if definition.key in table:
            raise ConfigurationError(f"{name} registry defines '{definition.key}' twice")
        table[definition.key] = definition

    for definition in table.values():
        unknown = [t for t in definition.allowed_next if t not in table]
        if unknown:
            raise ConfigurationError(
                f"{name} registry: '{definition.key}' allows unknown status(es) {unknown}"
            )

    return StatusRegistry(name=name, statuses=MappingProxyType(table))


def validate_transition(current: str, requested: str, registry: StatusRegistry) -> dict:
    """
    Decide whether ``current -> requested`` is allowed. Pure; no side effects.

    Returns:
        {"valid": bool, "from": str, "to": str, "reason": str|None}

    Raises:
        ConfigurationError: ``current`` is not a member of the registry
            (a stored record holds a status nothing defines).
    """
    current_def = registry.get(current)
    if current_def is None:
        raise ConfigurationError(
            f"{registry.name} registry has no status '{current}'"
        )

    if requested not in registry:
        return {"valid": False, "from": current, "to": requested,
                "reason": f"Unknown {registry.name} status: {requested}"}

    if requested not in current_def.allowed_next:
        if current_def.is_terminal:
            reason = f"'{current}' is a terminal status"
        else:
            reason = f"allowed from '{current}': {', '.join(current_def.allowed_next)}"
        return {"valid": False, "from": current, "to": requested, "reason": reason}

    return {"valid": True, "from": current, "to": requested, "reason": None}


def enforce_transition(current: str, requested: str, registry: StatusRegistry) -> None:
    """Raise ``InvalidTransitionError`` unless the transition is allowed."""
    result = validate_transition(current, requested, registry)
    if not result["valid"]:
        raise InvalidTransitionError(registry.name, current, requested, result["reason"])


def available_transitions(current: str, registry: StatusRegistry) -> list[str]:
    current_def = registry.get(current)
    if current_def is None:
        raise ConfigurationError(f"{registry.name} registry has no status '{current}'")
    return list(current_def.allowed_next)
