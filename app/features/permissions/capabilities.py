"""
Capability matrix: which administrative actions each role may perform.

The matrix is a plain object injected into routes through
``get_capability_matrix``; load/save are explicit so tests can build isolated
instances. One admin writes at a time; concurrent edits of the same cell are
last-write-wins.
"""
from typing import Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.models import Capability, Role, RoleCapability
from app.utils import get_logger


log = get_logger(__name__)

ALL_CAPABILITIES: frozenset[Capability] = frozenset(Capability)

# Initial state and reset target. The top role is implicit (always everything).
DEFAULT_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.BRANCH_ADMIN: frozenset({Capability.MANAGE_BRANCH_USERS}),
    Role.DEPT_ADMIN: frozenset({Capability.MANAGE_DEPT_USERS}),
    Role.USER: frozenset(),
}

EDITABLE_ROLES: tuple[Role, ...] = tuple(role for role in Role if role != Role.TOP)


class CapabilityMatrix:
    """
    Mutable Role -> set of capabilities table.
    
    Usage:
        matrix = CapabilityMatrix()
        matrix.set(Role.BRANCH_ADMIN, Capability.VIEW_AUDIT_LOGS, True)
        matrix.has(Role.BRANCH_ADMIN, Capability.VIEW_AUDIT_LOGS)  # True
        matrix.set(Role.TOP, Capability.SYSTEM_SETTINGS, False)  # no-op, returns False
    """

    def __init__(self, table: Mapping[Role, Iterable[Capability]] | None = None):
        self._table: dict[Role, set[Capability]] = {}
        self.reset_to_defaults()
        if table:
            for role, capabilities in table.items():
                if role == Role.TOP:
                    continue
                self._table[role] = set(capabilities)

    @classmethod
    def from_rows(cls, rows: Iterable[RoleCapability]) -> "CapabilityMatrix":
        """Build a matrix from persisted cells; cells without a row keep their default."""
        matrix = cls()
        for row in rows:
            if row.role == Role.TOP:
                continue
            matrix._apply(row.role, row.capability, row.enabled)
        return matrix

    def get(self, role: Role) -> frozenset[Capability]:
        if role == Role.TOP:
            return ALL_CAPABILITIES
        return frozenset(self._table.get(role, ()))

    def has(self, role: Role, capability: Capability) -> bool:
        return capability in self.get(role)

    def set(self, role: Role, capability: Capability, enabled: bool) -> bool:
        """
        Toggle one (role, capability) cell.
        
        Returns True if the cell changed. The top role is fixed: requests to
        change it are ignored and return False.
        """
        if role == Role.TOP:
            log.debug("Ignoring capability change for top role: %s=%s", capability.value, enabled)
            return False
        return self._apply(role, capability, enabled)

    def reset_to_defaults(self) -> None:
        self._table = {role: set(capabilities) for role, capabilities in DEFAULT_CAPABILITIES.items()}

    def as_dict(self) -> dict[Role, dict[Capability, bool]]:
        """Full boolean grid, top role included."""
        return {
            role: {capability: self.has(role, capability) for capability in Capability}
            for role in Role
        }

    def to_rows(self) -> list[RoleCapability]:
        """One unsaved row per non-top (role, capability) cell."""
        return [
            RoleCapability(role=role, capability=capability, enabled=self.has(role, capability))
            for role in EDITABLE_ROLES
            for capability in Capability
        ]

    def _apply(self, role: Role, capability: Capability, enabled: bool) -> bool:
        capabilities = self._table.setdefault(role, set())
        before = capability in capabilities
        if enabled:
            capabilities.add(capability)
        else:
            capabilities.discard(capability)
        return before != enabled

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CapabilityMatrix):
            return NotImplemented
        return self.as_dict() == other.as_dict()

    def __repr__(self) -> str:
        enabled = {role.value: sorted(c.value for c in self.get(role)) for role in EDITABLE_ROLES}
        return f"<CapabilityMatrix({enabled})>"


# ============================================================================
# Persistence
# ============================================================================

async def load_capability_matrix(db: AsyncSession) -> CapabilityMatrix:
    """Load the persisted matrix; missing cells fall back to the defaults."""
    result = await db.execute(select(RoleCapability))
    return CapabilityMatrix.from_rows(result.scalars().all())


async def persist_capability(
    db: AsyncSession,
    role: Role,
    capability: Capability,
    enabled: bool
) -> None:
    """Overwrite a single cell. The top role is never persisted."""
    if role == Role.TOP:
        return
    row = await db.get(RoleCapability, (role, capability))
    if row is None:
        db.add(RoleCapability(role=role, capability=capability, enabled=enabled))
    else:
        row.enabled = enabled
    await db.flush()


async def save_capability_matrix(db: AsyncSession, matrix: CapabilityMatrix) -> None:
    """Write every non-top cell of the matrix."""
    result = await db.execute(select(RoleCapability))
    existing = {(row.role, row.capability): row for row in result.scalars().all()}
    
    for cell in matrix.to_rows():
        row = existing.get((cell.role, cell.capability))
        if row is None:
            db.add(cell)
        elif row.enabled != cell.enabled:
            row.enabled = cell.enabled
    
    await db.flush()
    log.info("Capability matrix saved: %r", matrix)
