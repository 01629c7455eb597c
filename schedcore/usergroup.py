"""Cached resolution of users to the groups they belong to."""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Optional, Sequence

logger = logging.getLogger(__name__)

NEGATIVE_CACHE_SECONDS = 30
POSITIVE_CACHE_SECONDS = 300
CLEANER_INTERVAL_SECONDS = 60.0

_LOOKUP_ERRORS = (LookupError, OSError)


@dataclass(frozen=True)
class OsUser:
    """A user as the resolver sees it."""

    uid: str
    gid: str
    username: str


@dataclass
class UserGroup:
    """A user with its resolved groups; the primary group comes first."""

    user: str = ""
    groups: list[str] = field(default_factory=list)
    failed: bool = False
    resolved: int = 0

    def copy(self) -> "UserGroup":
        return replace(self, groups=list(self.groups))


class UserGroupError(Exception):
    """Raised when a user cannot be resolved; carries what was resolved, if anything."""

    def __init__(self, message: str, user_group: Optional[UserGroup] = None) -> None:
        super().__init__(message)
        self.user_group = user_group if user_group is not None else UserGroup()


LookupUser = Callable[[str], OsUser]
LookupGroupId = Callable[[str], str]
GroupIds = Callable[[OsUser], list[str]]


class UserGroupCache:
    """Resolves users through pluggable lookups and caches successes and failures.

    Without a group-id lookup, group ids are used as group names; without a
    group listing, a user belongs to its primary group only.
    """

    def __init__(
        self,
        lookup: LookupUser,
        lookup_group_id: Optional[LookupGroupId] = None,
        group_ids: Optional[GroupIds] = None,
        interval: float = CLEANER_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.interval = interval
        self.entries: dict[str, UserGroup] = {}
        self._lookup = lookup
        self._lookup_group_id = lookup_group_id
        self._group_ids = group_ids
        self._clock = clock
        self._lock = threading.Lock()
        self._cleaner: Optional[threading.Thread] = None

    def _now(self) -> int:
        return int(self._clock())

    def start_cleaner(self) -> threading.Thread:
        """Start the background thread that expires old entries; idempotent."""
        with self._lock:
            if self._cleaner is None or not self._cleaner.is_alive():
                self._cleaner = threading.Thread(
                    target=self._run_cleaner, name="usergroup-cleaner", daemon=True
                )
                self._cleaner.start()
            return self._cleaner

    def _run_cleaner(self) -> None:
        while True:
            time.sleep(self.interval)
            started = time.monotonic()
            self.clean_up_cache()
            logger.debug(
                "time consumed cleaning the UserGroupCache: %.6fs", time.monotonic() - started
            )

    def clean_up_cache(self) -> None:
        """Drop expired entries; failed lookups expire sooner than successes."""
        now = self._now()
        oldest = now - POSITIVE_CACHE_SECONDS
        oldest_failed = now - NEGATIVE_CACHE_SECONDS
        with self._lock:
            self.entries = {
                key: ug
                for key, ug in self.entries.items()
                if not (ug.resolved < oldest or (ug.failed and ug.resolved < oldest_failed))
            }

    def reset_cache(self) -> None:
        """Forget every cached entry."""
        logger.debug("UserGroupCache reset")
        with self._lock:
            self.entries = {}

    def convert_ugi(self, user: str, groups: Optional[Sequence[str]] = None) -> UserGroup:
        """Store the given user and groups, or resolve the user when no groups are given."""
        if not user:
            raise UserGroupError("empty user cannot resolve")
        if not groups:
            return self.get_user_group(user)
        ug = UserGroup(user=user, groups=list(groups))
        with self._lock:
            self.entries[user] = ug
        return ug.copy()

    def get_user_group(self, user_name: str) -> UserGroup:
        """Return the user's groups, from the cache when possible.

        A failed resolution is cached too and raises UserGroupError carrying the entry.
        """
        if not user_name:
            raise UserGroupError("empty user cannot resolve")
        with self._lock:
            cached = self.entries.get(user_name)
        if cached is not None:
            if not cached.failed:
                return cached.copy()
            stamp = datetime.fromtimestamp(cached.resolved)
            raise UserGroupError(
                f"user resolution failed, cached data returned: {stamp}", cached.copy()
            )

        ug = UserGroup(user=user_name)
        error: Optional[Exception] = None
        os_user: Optional[OsUser] = None
        try:
            os_user = self._lookup(user_name)
        except _LOOKUP_ERRORS as exc:
            logger.error("error resolving user %s: does not exist: %s", user_name, exc)
            ug.failed = True
            error = exc
        if os_user is not None:
            try:
                self._resolve_groups(ug, os_user)
            except _LOOKUP_ERRORS as exc:
                logger.error("error resolving groups for user %s: %s", user_name, exc)
                ug.failed = True
                error = exc
        ug.resolved = self._now()

        with self._lock:
            self.entries[user_name] = ug
        if error is not None:
            raise UserGroupError(str(error), ug.copy()) from error
        return ug.copy()

    def _group_name(self, gid: str) -> str:
        if self._lookup_group_id is None:
            return gid
        try:
            return self._lookup_group_id(gid)
        except _LOOKUP_ERRORS:
            return gid

    def _resolve_groups(self, ug: UserGroup, os_user: OsUser) -> None:
        ug.groups.append(self._group_name(os_user.gid))
        if self._group_ids is None:
            return
        gids = self._group_ids(os_user)
        ug.groups.extend(self._group_name(gid) for gid in gids if gid != os_user.gid)


# Resolver without any lookup: the user is the only member of a primary group of the same name.

def _no_lookup_user(user_name: str) -> OsUser:
    return OsUser(uid="-1", gid=user_name, username=user_name)


def new_no_resolve_cache() -> UserGroupCache:
    """A cache that echoes the user as its own group without resolving anything."""
    return UserGroupCache(_no_lookup_user)


# Resolver backed by the operating system's user database.

def _os_lookup_user(user_name: str) -> OsUser:
    try:
        import pwd
    except ImportError as exc:
        raise LookupError("user lookup is not supported on this platform") from exc
    entry = pwd.getpwnam(user_name)
    return OsUser(uid=str(entry.pw_uid), gid=str(entry.pw_gid), username=entry.pw_name)


def _os_lookup_group_id(gid: str) -> str:
    try:
        import grp
    except ImportError as exc:
        raise LookupError("group lookup is not supported on this platform") from exc
    try:
        number = int(gid)
    except ValueError as exc:
        raise LookupError(f"invalid group id: {gid}") from exc
    return grp.getgrgid(number).gr_name


def _os_group_ids(os_user: OsUser) -> list[str]:
    if not hasattr(os, "getgrouplist"):
        raise LookupError("group listing is not supported on this platform")
    return [str(gid) for gid in os.getgrouplist(os_user.username, int(os_user.gid))]


def new_os_cache() -> UserGroupCache:
    """A cache resolving users and groups through the operating system."""
    return UserGroupCache(_os_lookup_user, _os_lookup_group_id, _os_group_ids)


# Fixed resolver for tests.

_TEST_USERS = {
    "testuser1": OsUser(uid="1000", gid="1000", username="testuser1"),
    "testuser2": OsUser(uid="100", gid="100", username="testuser2"),
    "testuser3": OsUser(uid="1001", gid="1001", username="testuser3"),
}

_TEST_GROUP_IDS = {
    "testuser1": ["1001"],
    "testuser2": ["1001", "1002"],
    "testuser3": ["1002", "1001", "1003", "1004"],
}


def _test_lookup_user(user_name: str) -> OsUser:
    try:
        return _TEST_USERS[user_name]
    except KeyError:
        raise LookupError(f"lookup failed for user: {user_name}") from None


def _test_lookup_group_id(gid: str) -> str:
    try:
        number = int(gid)
    except ValueError:
        number = 0
    if number < 1000:
        raise LookupError(f"lookup failed for group: {gid}")
    return "group" + gid


def _test_group_ids(os_user: OsUser) -> list[str]:
    try:
        return list(_TEST_GROUP_IDS[os_user.username])
    except KeyError:
        raise LookupError(f"lookup failed for user: {os_user.username}") from None


def new_test_cache() -> UserGroupCache:
    """A cache with a fixed set of test users; its cleaner runs every second."""
    return UserGroupCache(
        _test_lookup_user, _test_lookup_group_id, _test_group_ids, interval=1.0
    )


_instance: Optional[UserGroupCache] = None
_instance_lock = threading.Lock()


def get_user_group_cache(resolver: str) -> UserGroupCache:
    """Return the process-wide cache, creating it with the named resolver on first use.

    "test" and "os" select those resolvers; anything else resolves nothing.
    """
    global _instance
    with _instance_lock:
        if _instance is None:
            if resolver == "test":
                logger.info("creating test user group resolver")
                cache = new_test_cache()
            elif resolver == "os":
                logger.info("creating OS user group resolver")
                cache = new_os_cache()
            else:
                logger.info("creating UserGroupCache without resolver")
                cache = new_no_resolve_cache()
            logger.info("starting UserGroupCache cleaner, interval %ss", cache.interval)
            cache.start_cleaner()
            _instance = cache
        return _instance