from __future__ import annotations

import secrets
import string
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from idprov.cluster.state import ClusterState

logger = structlog.get_logger()

PASSWORD_ALPHABET = string.ascii_letters + string.digits


def generate_password(length: int = 12) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def persisted_password(
    state: ClusterState, node: str, path: str, *, length: int = 12, persist: bool = True
) -> str:
    """
    Return the password stored at ``path`` for ``node``, generating it once.

    A freshly generated password is saved immediately so that a run failing
    later still reuses it next time. With ``persist=False`` it is only kept in
    memory.
    """
    created = state.set_unless(node, path, lambda: generate_password(length))
    if created:
        if persist:
            state.save()
        logger.info("password_generated", node=node, path=path, persisted=persist)
    return state.get(node, path)
