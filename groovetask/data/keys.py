"""Key namespaces used in the key-value backend."""

from __future__ import annotations


def user(uid: str) -> str:
    return f"user:{uid}"


def legacy_user(email: str) -> str:
    # pre-id accounts were keyed by their e-mail address
    return f"user:{email.lower()}"


def email(address: str) -> str:
    return f"email:{address.lower()}"


def username(name: str) -> str:
    return f"username:{name.lower()}"


def user_groups(uid: str) -> str:
    return f"user:{uid}:groups"


def user_invites(uid: str) -> str:
    return f"user:{uid}:invites"


def history(uid: str) -> str:
    return f"data:history:{uid}"


def tasks(owner: str) -> str:
    return f"data:tasks:{owner}"


def task_order(owner: str) -> str:
    return f"data:tasks:order:{owner}"


def group_owner(gid: str) -> str:
    """Owner key of a group's task collection."""
    return f"group:{gid}"


def group(gid: str) -> str:
    return f"group:{gid}"


def group_members(gid: str) -> str:
    return f"group:{gid}:members"


def group_invites(gid: str) -> str:
    return f"group:{gid}:invites"


def chat(gid: str) -> str:
    return f"chat:{gid}"
