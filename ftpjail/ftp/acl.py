from dataclasses import dataclass, asdict
from typing import List

from .. import helper
from .parser import FtpConfig
from .errors import ExternalToolFailure

log = helper.getLogger("acl")

READ = "r"
READ_WRITE = "rw"


@dataclass(frozen=True)
class AuthRule:
    identity: str
    path: str
    access: str


class AccessControlProjector:
    """Keeps the daemon's authorization view in line with {username, group}.

    Rules are derived only from the pair, every projection replaces the
    previous set of the identity (clear-then-set).
    """

    def __init__(self, conf: FtpConfig, store):
        self.conf = conf
        self.store = store

    def derive_rules(self, username: str, group: str) -> List[AuthRule]:
        return [
            AuthRule(username, self.conf.tree_root(username), READ_WRITE),
            AuthRule(username, self.conf.shared_location(), READ_WRITE),
            AuthRule(username, self.conf.group_location(group), READ_WRITE),
        ]

    def anonymous_rule(self) -> AuthRule:
        return AuthRule(self.conf.anon_identity, self.conf.shared_location(), READ)

    def _ensure_anonymous(self) -> None:
        ident = self.conf.anon_identity
        rule = self.anonymous_rule()
        data = {
            "anonymous": True,
            "root": rule.path,
            "rules": [asdict(rule)],
        }
        if self.store.load(ident) == data:
            return
        self.store.save(ident, data)
        log.info(f"Anonymous read-only access on {rule.path}")

    def project_user(self, username: str, group: str) -> List[AuthRule]:
        rules = self.derive_rules(username, group)
        data = {
            "username": username,
            "group": group,
            "root": self.conf.tree_root(username),
            "rules": [asdict(r) for r in rules],
        }
        try:
            self._ensure_anonymous()
            self.store.delete(username)
            self.store.save(username, data)
        except (OSError, ValueError) as e:
            raise ExternalToolFailure(f"Authorization store unavailable, cannot project '{username}': {e}") from e
        log.info(f"Authorization for '{username}' projected (group '{group}')")
        return rules

    def deproject_user(self, username: str) -> None:
        try:
            if self.store.delete(username):
                log.info(f"Authorization for '{username}' removed")
        except OSError as e:
            raise ExternalToolFailure(f"Authorization store unavailable, cannot remove '{username}': {e}") from e

    def rules_for(self, username: str) -> List[AuthRule]:
        try:
            data = self.store.load(username)
        except (OSError, ValueError) as e:
            raise ExternalToolFailure(f"Authorization store unavailable: {e}") from e
        if not data:
            return []
        return [AuthRule(**r) for r in data.get("rules", [])]

    def group_of(self, username: str):
        """Group recorded in the last projection, or None."""
        try:
            data = self.store.load(username)
        except (OSError, ValueError) as e:
            raise ExternalToolFailure(f"Authorization store unavailable: {e}") from e
        return data.get("group") if data else None

    def projected_users(self) -> List[str]:
        try:
            return [i for i in self.store.identities() if i != self.conf.anon_identity]
        except OSError as e:
            raise ExternalToolFailure(f"Authorization store unavailable: {e}") from e
