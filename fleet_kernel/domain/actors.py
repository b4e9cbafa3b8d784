"""
Actors, roles and the role predicates used for stage permission checks.

A stage's required-role list mixes two different things: the literal
``supervisor`` (a boolean attribute any user may carry) and named roles
from a fixed set.  Both are compiled into predicates over
``(actor, request)`` so the engine never compares role enums directly.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol
from uuid import UUID

from fleet_kernel.domain.workflow import SUPERVISOR_ROLE, RequestSnapshot, Stage


class Role(str, Enum):
    STAFF = "staff"
    DRIVER = "driver"
    TRANSPORT_OFFICER = "transport_officer"
    ADMIN = "admin"
    DGS = "dgs"
    DDGS = "ddgs"
    AD_TRANSPORT = "ad_transport"


@dataclass(frozen=True)
class Actor:
    id: UUID
    roles: frozenset[str] = frozenset()
    is_supervisor: bool = False
    department: str | None = None
    name: str = ""

    def has_role(self, role: Role | str) -> bool:
        value = role.value if isinstance(role, Role) else role
        return value in self.roles


class IdentityProvider(Protocol):
    """Looks up actors for permission checks and notification routing."""

    def find_by_id(self, user_id: UUID) -> Actor | None:
        ...

    def find_by_role(self, role: str) -> Sequence[Actor]:
        ...


RolePredicate = Callable[[Actor, RequestSnapshot], bool]


@dataclass(frozen=True)
class RoleRequirement:
    """One required-role entry of a stage, compiled to a predicate."""

    entry: str
    predicate: RolePredicate = field(compare=False)
    # Which request field (if any) the actor must match for this entry.
    match_field: str | None = None


def compile_role_requirements(stage: Stage) -> tuple[RoleRequirement, ...]:
    requirements = []
    for entry in stage.required_roles:
        if entry == SUPERVISOR_ROLE:
            if stage.requires_supervisor_match:
                requirements.append(RoleRequirement(
                    entry,
                    lambda a, r: a.is_supervisor and r.supervisor_id == a.id,
                    match_field="supervisor_id",
                ))
            else:
                requirements.append(RoleRequirement(entry, lambda a, r: a.is_supervisor))
        elif entry == Role.DRIVER.value and stage.requires_driver_match:
            requirements.append(RoleRequirement(
                entry,
                lambda a, r: a.has_role(Role.DRIVER) and r.assigned_driver_id == a.id,
                match_field="assigned_driver_id",
            ))
        else:
            requirements.append(RoleRequirement(
                entry, lambda a, r, role=entry: a.has_role(role),
            ))
    return tuple(requirements)
