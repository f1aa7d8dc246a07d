"""Resolve user-supplied repository references to an owner/name pair."""

from __future__ import annotations

from .errors import InvalidReference
from .models import RepositoryRef


def parse_repo_reference(reference: str) -> RepositoryRef:
    """Return the last two path segments of ``reference`` as a RepositoryRef.

    Accepts full URLs (``https://github.com/owner/name``), URLs with extra
    path segments or trailing slashes, clone URLs ending in ``.git`` and
    bare ``owner/name`` strings.
    """
    if not isinstance(reference, str):
        raise InvalidReference(repr(reference))
    segments = [s for s in reference.strip().rstrip("/").split("/") if s]
    if len(segments) < 2:
        raise InvalidReference(reference)
    owner, name = segments[-2], segments[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not name:
        raise InvalidReference(reference)
    return RepositoryRef(owner=owner, name=name)
