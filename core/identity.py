"""
core/identity.py -- Computing-id extraction, directory lookup and provisioner detection.

Device names, emails and domain-qualified usernames all embed the same
institution-issued "computing id" (e.g. "jsm2ku"). It is the only join key
shared by every upstream system, so ownership resolution starts here.

Pure functions and immutable lookups only. The Directory is built once per
pipeline run and passed explicitly to every stage that needs it.
"""

import logging
import re
from collections.abc import Iterable
from typing import NamedTuple, Optional

from core.config import Settings, get_settings
from core.models import UNASSIGNED, DirectoryEntry

logger = logging.getLogger("fleetwatch.identity")

# Letters, one digit, then letters/digits: "jsm2ku", "bh4hb", "ab1c".
_ID = r"[A-Za-z]{2,4}[0-9][A-Za-z0-9]*"

# Pattern priority order. Each captures the id in group 1.
COMPUTING_ID_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(rf"(?<![A-Za-z0-9])[A-Za-z]{{2,4}}-({_ID})-[A-Za-z0-9]+"),  # PREFIX-{id}-{suffix}
    re.compile(rf"(?<![A-Za-z0-9])[A-Za-z]{{2,4}}-({_ID})$"),  # PREFIX-{id}
    re.compile(rf"(?<![A-Za-z0-9.])({_ID})@"),  # {id}@domain
)

_ID_SHAPE_RE = re.compile(rf"^{_ID}$")
_PAREN_ID_RE = re.compile(r"\(([A-Za-z0-9]+)\)")
_TAG_RE = re.compile(r"\s*\((?:IT )?provisioner\)\s*$", re.IGNORECASE)
_SPACE_RE = re.compile(r"\s+")

PROVISIONER_TAG = "(IT Provisioner)"


def extract_computing_ids(text: Optional[str], settings: Optional[Settings] = None) -> list[str]:
    """Return computing ids found in free text, in pattern-priority order.

    Matches are lowercased, length-checked against the configured bounds and
    deduplicated (first occurrence wins). Year and serial fragments never
    match because an id must start with letters and contain a digit.
    """
    if not text:
        return []
    settings = settings or get_settings()
    found: list[str] = []
    for pattern in COMPUTING_ID_PATTERNS:
        for match in pattern.finditer(text.strip()):
            cid = match.group(1).lower()
            if not settings.computing_id_min_length <= len(cid) <= settings.computing_id_max_length:
                continue
            if cid not in found:
                found.append(cid)
    return found


def computing_id_from_user(value: Optional[str], settings: Optional[Settings] = None) -> Optional[str]:
    """Extract a computing id from "DOMAIN\\user", "user@domain" or a bare id."""
    if not value:
        return None
    settings = settings or get_settings()
    candidate = value.strip()
    if "\\" in candidate:
        candidate = candidate.rsplit("\\", 1)[1]
    elif "@" in candidate:
        candidate = candidate.split("@", 1)[0]
    if not _ID_SHAPE_RE.match(candidate):
        return None
    if not settings.computing_id_min_length <= len(candidate) <= settings.computing_id_max_length:
        return None
    return candidate.lower()


def email_local_part(email: Optional[str]) -> str:
    if not email:
        return ""
    return email.strip().split("@", 1)[0].lower()


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------


class ResolvedUser(NamedTuple):
    name: str
    email: str
    matched: bool


class Directory:
    """Read-only roster lookup keyed by lowercase computing id."""

    def __init__(self, entries: Iterable[DirectoryEntry] = (), settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._entries: dict[str, DirectoryEntry] = {}
        for entry in entries:
            key = entry.computing_id.strip().lower()
            if key:
                self._entries[key] = entry

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, computing_id: object) -> bool:
        return isinstance(computing_id, str) and computing_id.strip().lower() in self._entries

    def lookup(self, computing_id: Optional[str]) -> Optional[DirectoryEntry]:
        if not computing_id:
            return None
        return self._entries.get(computing_id.strip().lower())

    def resolve(self, computing_id: str) -> ResolvedUser:
        """Return display name and email for an id, falling back to the id itself."""
        cid = computing_id.strip().lower()
        entry = self._entries.get(cid)
        fallback_email = f"{cid}@{self._settings.email_domain}"
        if entry is None:
            return ResolvedUser(name=cid, email=fallback_email, matched=False)
        return ResolvedUser(
            name=entry.name or entry.email or cid,
            email=entry.email or fallback_email,
            matched=True,
        )

    def first_match(self, computing_ids: Iterable[str]) -> Optional[tuple[str, DirectoryEntry]]:
        """Return the first (id, entry) pair present in the roster."""
        for cid in computing_ids:
            entry = self.lookup(cid)
            if entry is not None:
                return cid, entry
            logger.debug("No directory entry for computing id %r", cid)
        return None

    def find(self, owner: Optional[str]) -> Optional[DirectoryEntry]:
        """Entry for a free-form owner string: an id, an email or a display name."""
        cid = computing_id_from_user(owner, self._settings)
        entry = self.lookup(cid)
        if entry is not None:
            return entry
        key = identity_key(owner)
        if not key:
            return None
        return next((e for e in self._entries.values() if identity_key(e.name) == key), None)


# ---------------------------------------------------------------------------
# Provisioners
# ---------------------------------------------------------------------------


def is_provisioner(name: Optional[str], email: Optional[str] = None, settings: Optional[Settings] = None) -> bool:
    """True if a declared owner is one of the IT staff accounts that set devices up.

    Matches configured ids, their emails, an id in parentheses
    ("Whelchel, Jeffrey Wayne (jww8je)") and configured display names in either
    name order. A shared surname alone is not a match.
    """
    settings = settings or get_settings()
    ids = set(settings.provisioner_ids)
    if not ids and not settings.provisioner_names:
        return False

    owner = (name or "").strip()
    lowered = owner.lower()
    if lowered in ids:
        return True
    if "@" in owner and email_local_part(owner) in ids:
        return True
    if email:
        if email.strip().lower() in {f"{i}@{settings.email_domain}" for i in ids}:
            return True
        if email_local_part(email) in ids:
            return True

    paren = _PAREN_ID_RE.search(owner)
    if paren and paren.group(1).lower() in ids:
        return True

    key = identity_key(owner)
    return bool(key) and any(identity_key(n) == key for n in settings.provisioner_names)


def tag_provisioner(name: str) -> str:
    return f"{name} {PROVISIONER_TAG}"


# ---------------------------------------------------------------------------
# Identity normalisation
# ---------------------------------------------------------------------------


def identity_key(value: Optional[str]) -> str:
    """Normalise an owner string so equal people compare equal.

    Drops provisioner tags and email domains, reorders "Last, First" to
    "first last" and collapses whitespace.
    """
    if not value:
        return ""
    text = _TAG_RE.sub("", value.strip())
    text = _PAREN_ID_RE.sub("", text).strip()
    if "@" in text:
        text = text.split("@", 1)[0]
    if "," in text:
        last, first = text.split(",", 1)
        text = f"{first.strip()} {last.strip()}"
    return _SPACE_RE.sub(" ", text).strip().lower()


def same_identity(first: Optional[str], second: Optional[str], directory: Optional[Directory] = None) -> bool:
    """True if two owner strings name the same person.

    With a directory, an id or email on one side also matches the directory
    display name on the other ("jsm2ku" == "Jane Smith").
    """
    a, b = identity_key(first), identity_key(second)
    if not a or not b:
        return False
    if a == b:
        return True
    if directory is None:
        return False
    for left, right in ((a, b), (b, a)):
        entry = directory.lookup(left)
        if entry is not None and identity_key(entry.name) == right:
            return True
    return False


def is_unassigned(owner: Optional[str]) -> bool:
    return not owner or owner.strip() in {UNASSIGNED, "Unknown"}
