# app/permissions.py
from app.errors import AuthorizationError, NotFoundError


def can_mutate(actor_id, entity, parent_owner_id=None) -> bool:
    """Owners may mutate their rows; a comment's parent video owner may too."""
    if actor_id is None or entity is None:
        return False
    if entity.owner_id == actor_id:
        return True
    return parent_owner_id is not None and parent_owner_id == actor_id


def ensure_can_mutate(actor_id, entity, resource: str, action: str, parent_owner_id=None):
    if entity is None:
        raise NotFoundError(f"{resource} not found")
    if not can_mutate(actor_id, entity, parent_owner_id):
        raise AuthorizationError(f"You are not authorized to {action} this {resource.lower()}")
    return entity
