"""Role-based permission decisions for scheduling actions."""

from typing import Protocol

from app.schemas.auth import ResourceOwners, SchedulingAction, UserRole

A = SchedulingAction

# Actions a role may perform on any appointment
_UNRESTRICTED: dict[UserRole, frozenset[SchedulingAction]] = {
    UserRole.ADMIN: frozenset(SchedulingAction),
    UserRole.RECEPTION: frozenset(
        {
            A.READ,
            A.LIST,
            A.CREATE,
            A.UPDATE,
            A.CONFIRM,
            A.RESCHEDULE,
            A.CANCEL,
            A.OFFER_RESCHEDULE,
            A.MARK_ARRIVED,
            A.MARK_NO_SHOW,
            A.VIEW_AUDIT,
            A.VIEW_STATS,
            A.VIEW_UPCOMING,
        }
    ),
    UserRole.PROFESSIONAL: frozenset(),
    UserRole.PATIENT: frozenset(),
}

# Actions a role may perform only on appointments it owns
_OWN_ONLY: dict[UserRole, frozenset[SchedulingAction]] = {
    UserRole.ADMIN: frozenset(),
    UserRole.RECEPTION: frozenset(),
    UserRole.PROFESSIONAL: frozenset(
        {
            A.READ,
            A.LIST,
            A.CREATE,
            A.UPDATE,
            A.CONFIRM,
            A.RESCHEDULE,
            A.CANCEL,
            A.OFFER_RESCHEDULE,
            A.MARK_NO_SHOW,
            A.START_SESSION,
            A.END_SESSION,
            A.VIEW_STATS,
        }
    ),
    UserRole.PATIENT: frozenset({A.READ, A.LIST, A.RESCHEDULE, A.CANCEL}),
}


class AuthorizationPolicy(Protocol):
    """Decides whether an actor may perform an action."""

    def can_perform(
        self,
        actor_role: UserRole,
        actor_id: str,
        action: SchedulingAction,
        resource_owner_ids: ResourceOwners | None = None,
    ) -> bool:
        """Return True if the action is permitted."""
        ...


class RolePermissionPolicy:
    """
    Static role → action mapping with ownership scoping.

    Called twice per operation: once with ``resource_owner_ids=None`` before any
    store access (role gate), and once with the loaded appointment's owners.
    Professionals own appointments booked with them; patients own appointments whose
    patient snapshot carries their email.
    """

    def can_perform(
        self,
        actor_role: UserRole,
        actor_id: str,
        action: SchedulingAction,
        resource_owner_ids: ResourceOwners | None = None,
    ) -> bool:
        """
        Decide on an action.

        Args:
            actor_role: Role of the acting user
            actor_id: Ownership identity of the actor (see ``Actor.subject_id``)
            action: Requested action
            resource_owner_ids: Owners of the target appointment, or None for the role gate

        Returns:
            True if permitted
        """
        if action in _UNRESTRICTED.get(actor_role, frozenset()):
            return True

        if action not in _OWN_ONLY.get(actor_role, frozenset()):
            return False

        if resource_owner_ids is None:
            return True

        if actor_role == UserRole.PROFESSIONAL:
            return resource_owner_ids.professional_id == actor_id
        if actor_role == UserRole.PATIENT:
            owner_email = resource_owner_ids.patient_email
            return owner_email is not None and owner_email.lower() == actor_id
        return False
