from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from . import glb, helper
from .outcome import Outcome
from .ftp import parser
from .ftp.parser import FtpConfig
from .ftp.jail import NamespaceComposer
from .ftp.acl import AccessControlProjector
from .ftp.errors import (
    AlreadyExistsError,
    ExternalToolFailure,
    FtpJailError,
    NotFoundError,
    PartialStateError,
    ValidationError,
)

log = helper.getLogger("manager")


@dataclass
class UserRecord:
    username: str
    group: Optional[str]
    root: str
    has_tree: bool
    projected: bool


class FtpManager:
    """Core facade: user CRUD over identity, namespace tree and authorization.

    Every public method returns an Outcome. Nothing is printed here, the
    console renders the outcome.
    """

    def __init__(self, conf: FtpConfig, identity, fs, store):
        self.conf = conf
        self.identity = identity
        self.fs = fs
        self.composer = NamespaceComposer(conf, fs, identity)
        self.projector = AccessControlProjector(conf, store)

    @classmethod
    def for_host(cls, conf: FtpConfig) -> "FtpManager":
        """Manager wired to the real host. Fails before any change without root."""
        from .ftp.user import OsIdentityStore
        from .ftp.mounts import HostFs
        from .ftp.metadata import VsftpdRuleStore

        helper.require_root()
        return cls(conf, OsIdentityStore(conf), HostFs(conf.fstab), VsftpdRuleStore(conf))

    # -----------------------------------------------------------------
    def bootstrap(self) -> Outcome:
        """Create the configured groups and the global folder layout."""
        try:
            created = [g for g in self.conf.groups if self.identity.ensure_group(g)]
            dirs = self.composer.prepare_global_root()
        except FtpJailError as e:
            log.error(f"Bootstrap failed: {e}")
            return Outcome.failure(f"Bootstrap failed: {e}")
        details = [f"group '{g}' created" for g in created] + [f"{d} created" for d in dirs]
        return Outcome.ok(f"FTP root {self.conf.ftp_root} ready", details)

    def _membership_warning(self, username: str) -> List[str]:
        groups = self.identity.memberships(username)
        if len(groups) > 1:
            return [f"'{username}' is in several FTP groups {groups}, '{groups[0]}' is used"]
        return []

    def _check_managed(self, username: str) -> None:
        if username == self.conf.anon_identity:
            raise ValidationError(f"'{username}' is the anonymous FTP account, not a managed user")

    def _resumable(self, username: str) -> bool:
        if username == self.conf.anon_identity:
            return False
        return self.composer.has_tree(username) or bool(self.projector.rules_for(username))

    def create_user(self, username: str, group: str, password: str) -> Outcome:
        try:
            username = parser.validate_username(username, self.conf)
            group = parser.validate_group(self.conf, group)
            parser.validate_password(password)
        except ValidationError as e:
            return Outcome.failure(str(e))

        details = []
        try:
            if self.identity.user_exists(username):
                if not self._resumable(username):
                    raise AlreadyExistsError(f"User '{username}' already exists")
                details.append(f"resuming an interrupted creation of '{username}'")
                log.warning(f"User '{username}' exists with a partial tree, resuming")
                self.identity.set_password(username, password)
                for g in self.identity.memberships(username):
                    if g != group:
                        self.identity.remove_from_group(username, g)
            else:
                self.identity.create_user(username, password)
            self.identity.add_to_group(username, group)
            handle = self.composer.create_user_tree(username, group)
            self.projector.project_user(username, group)
        except AlreadyExistsError as e:
            return Outcome.failure(str(e))
        except ExternalToolFailure as e:
            log.error(f"Creating '{username}' aborted: {e}")
            return Outcome.failure(f"Creating '{username}' aborted, re-run to resume: {e}", details)
        except FtpJailError as e:
            log.error(f"Creating '{username}' failed: {e}")
            return Outcome.failure(str(e), details)

        details.append(f"{handle.root}: {', '.join(handle.entries)}")
        msg = f"User '{username}' created in group '{group}'"
        if len(details) > 1:
            return Outcome.warning(msg, details)
        return Outcome.ok(msg, details)

    def create_users(self, records: Iterable[Tuple[str, str, str]]) -> List[Outcome]:
        records = list(records)
        parser.validate_int(str(len(records)), 1, glb.BATCH_MAX)
        return [self.create_user(u, g, p) for u, g, p in records]

    def _self_heal(self, username: str, group: Optional[str]) -> List[str]:
        """Check the tree and repair it when it drifted."""
        try:
            self.composer.assert_consistent(username, group)
            return []
        except PartialStateError as e:
            log.warning(str(e))
            report = self.composer.repair_tree(username, group)
            return [f"repaired: {line}" for line in report.issues]

    def change_group(self, username: str, new_group: str) -> Outcome:
        try:
            self._check_managed(username)
            new_group = parser.validate_group(self.conf, new_group)
        except ValidationError as e:
            return Outcome.failure(str(e))
        try:
            if not self.identity.user_exists(username):
                raise NotFoundError(f"User '{username}' does not exist")
            details = self._membership_warning(username)
            groups = self.identity.memberships(username)
            recorded = self.projector.group_of(username)
            if groups == [new_group] and recorded == new_group:
                return Outcome.noop(f"User '{username}' already belongs to '{new_group}', no change", details)
            # přerušená změna skupiny: starou skupinu bereme z členství nebo z posledních pravidel
            old_group = next((g for g in groups if g != new_group), None)
            if old_group is None and recorded != new_group:
                old_group = recorded

            details += self._self_heal(username, old_group)

            self.identity.add_to_group(username, new_group)
            self.composer.change_group(username, old_group, new_group)
            self.projector.project_user(username, new_group)
            for g in self.identity.memberships(username):
                if g != new_group:
                    self.identity.remove_from_group(username, g)
        except NotFoundError as e:
            return Outcome.failure(str(e))
        except FtpJailError as e:
            log.error(f"Changing group of '{username}' aborted: {e}")
            return Outcome.failure(f"Changing group of '{username}' aborted, re-run to resume: {e}")

        msg = f"User '{username}' moved from '{old_group or 'none'}' to '{new_group}'"
        if details:
            return Outcome.warning(msg, details)
        return Outcome.ok(msg)

    def delete_user(self, username: str) -> Outcome:
        details = []
        try:
            self._check_managed(username)
            exists = self.identity.user_exists(username)
            if not exists and not self._resumable(username):
                raise NotFoundError(f"User '{username}' does not exist")
            if not exists:
                details.append(f"identity '{username}' already gone, cleaning leftovers")
            elif self.composer.has_tree(username):
                # rozbitý strom neopravujeme, jen hlásíme co se maže
                group = self.identity.current_group_of(username)
                for issue in self.composer.inspect_tree(username, group):
                    log.warning(f"Deleting '{username}' with a drifted tree: {issue}")
                    details.append(f"drift: {issue}")
            self.composer.delete_user_tree(username)
            self.projector.deproject_user(username)
            if exists:
                for g in self.identity.memberships(username):
                    self.identity.remove_from_group(username, g)
                self.identity.delete_user(username)
        except (NotFoundError, ValidationError) as e:
            return Outcome.failure(str(e))
        except FtpJailError as e:
            log.error(f"Deleting '{username}' aborted: {e}")
            return Outcome.failure(f"Deleting '{username}' aborted, re-run to resume: {e}", details)

        msg = f"User '{username}' deleted"
        if details:
            return Outcome.warning(msg, details)
        return Outcome.ok(msg)

    def repair_user(self, username: str) -> Outcome:
        try:
            self._check_managed(username)
            details = self._membership_warning(username)
            group = self.identity.current_group_of(username)
            report = self.composer.repair_tree(username, group)
            if group is not None and self.projector.group_of(username) != group:
                self.projector.project_user(username, group)
                report.issues.append("authorization rules out of date")
                report.fixed.append("authorization rules re-projected")
        except FtpJailError as e:
            log.error(f"Repairing '{username}' failed: {e}")
            return Outcome.failure(str(e))

        if report.clean and not details:
            return Outcome.ok(f"Tree of '{username}' is consistent")
        return Outcome.warning(f"Tree of '{username}' repaired", details + report.fixed)

    def list_users(self) -> List[UserRecord]:
        out = []
        projected = set(self.projector.projected_users())
        for username, group in self.identity.ftp_users():
            out.append(UserRecord(
                username=username,
                group=group,
                root=self.composer.tree_root(username),
                has_tree=self.composer.has_tree(username),
                projected=username in projected,
            ))
        return out
