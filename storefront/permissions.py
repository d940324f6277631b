"""Ownership and role rules for every protected resource."""
from storefront.errors import Forbidden
from storefront.models import Account, Payment, Review


def _owns(caller, resource):
    if isinstance(resource, Account):
        return resource.id == caller.id
    return resource.account_id == caller.id


def can_access(caller: Account, resource, action: str) -> bool:
    if isinstance(resource, Payment):
        if action in ("read", "cancel"):
            return caller.is_admin or _owns(caller, resource)
        if action == "refund":
            return caller.is_admin
        return False

    if isinstance(resource, Review):
        if action == "read":
            return True
        if action == "update":
            # admins may remove other people's reviews but never rewrite them
            return _owns(caller, resource)
        if action == "delete":
            return caller.is_admin or _owns(caller, resource)
        return False

    if isinstance(resource, Account):
        if action == "read":
            return caller.is_admin or _owns(caller, resource)
        if action == "update":
            return _owns(caller, resource)
        return False

    return False


def authorize(caller: Account, resource, action: str):
    if not can_access(caller, resource, action):
        raise Forbidden(f"You are not allowed to {action} this {type(resource).__name__.lower()}")
