import os
from dataclasses import dataclass, field
from typing import List, Optional

from .. import helper
from .parser import FtpConfig
from .errors import NotFoundError, PartialStateError, ValidationError

log = helper.getLogger("jail")

# jail root musí být root:root 755, vsftpd odmítne zapisovatelný chroot
ROOT_OWNER = "root"
ROOT_MODE = 0o755
PRIVATE_MODE = 0o700
SHARED_MODE = 0o777
GROUP_MODE = 0o775
MOUNTPOINT_MODE = 0o755


@dataclass
class TreeHandle:
    username: str
    group: str
    root: str
    entries: List[str] = field(default_factory=list)


@dataclass
class RepairReport:
    username: str
    issues: List[str] = field(default_factory=list)
    fixed: List[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.issues


class NamespaceComposer:
    """Builds, mutates and tears down the per-user chroot tree.

    Layout of the tree::

        <home_root>/<user>/ftp/
            general     bind of <ftp_root>/general
            <group>     bind of <ftp_root>/<group>
            <user>      private directory

    Every step checks the filesystem before acting, so any operation can
    be re-run after an interruption and converges to the same tree.
    """

    def __init__(self, conf: FtpConfig, fs, identity):
        self.conf = conf
        self.fs = fs
        self.identity = identity

    # -----------------------------------------------------------------
    # cesty
    # -----------------------------------------------------------------
    def tree_root(self, username: str) -> str:
        return self.conf.tree_root(username)

    def _entry(self, username: str, name: str) -> str:
        return os.path.join(self.tree_root(username), name)

    def has_tree(self, username: str) -> bool:
        return self.fs.is_dir(self.tree_root(username))

    def _check_group(self, group: str) -> None:
        if group not in self.conf.groups:
            raise ValidationError(f"Unknown group '{group}'")

    # -----------------------------------------------------------------
    # globální struktura
    # -----------------------------------------------------------------
    def prepare_global_root(self) -> List[str]:
        """Create <ftp_root>, the shared folder and one folder per group."""
        done = []
        root = self.conf.ftp_root
        if self.fs.make_dir(root):
            done.append(root)
        self.fs.set_owner_and_rights(root, ROOT_OWNER, ROOT_OWNER, ROOT_MODE)

        shared = self.conf.shared_location()
        if self.fs.make_dir(shared):
            done.append(shared)
        self.fs.set_owner_and_rights(shared, ROOT_OWNER, ROOT_OWNER, SHARED_MODE)

        for g in self.conf.groups:
            loc = self.conf.group_location(g)
            if self.fs.make_dir(loc):
                done.append(loc)
            self.fs.set_owner_and_rights(loc, ROOT_OWNER, g, GROUP_MODE)
            log.info(f"Group folder {loc} ready")
        return done

    # -----------------------------------------------------------------
    # dílčí idempotentní kroky
    # -----------------------------------------------------------------
    def _ensure_root(self, username: str, report: Optional[RepairReport] = None) -> None:
        root = self.tree_root(username)
        if self.fs.make_dir(root):
            if report is not None:
                report.issues.append(f"missing isolation root {root}")
                report.fixed.append(f"created {root}")
        elif report is not None and self.fs.stat_owner(root) != (ROOT_OWNER, ROOT_OWNER, ROOT_MODE):
            report.issues.append(f"wrong ownership on {root}: {self.fs.stat_owner(root)}")
            report.fixed.append(f"reset ownership on {root}")
        self.fs.set_owner_and_rights(root, ROOT_OWNER, ROOT_OWNER, ROOT_MODE)

    def _private_expect(self, username: str):
        return username, self.identity.primary_group(username), PRIVATE_MODE

    def _ensure_private(self, username: str, report: Optional[RepairReport] = None) -> None:
        path = self._entry(username, username)
        expected = self._private_expect(username)
        if self.fs.make_dir(path):
            if report is not None:
                report.issues.append(f"missing private folder {path}")
                report.fixed.append(f"created {path}")
        elif self.fs.stat_owner(path) == expected:
            return
        elif report is not None:
            report.issues.append(f"wrong ownership on {path}: {self.fs.stat_owner(path)}")
            report.fixed.append(f"reset ownership on {path}")
        self.fs.set_owner_and_rights(path, *expected)

    def _ensure_link(self, target: str, path: str, report: Optional[RepairReport] = None) -> bool:
        """Make `path` a link to `target`. Returns True when something changed."""
        if self.fs.link_matches(path, target):
            return False
        if self.fs.is_link(path):
            if report is not None:
                report.issues.append(f"link {path} points to a wrong target")
            log.warning(f"Link {path} does not point to {target}, re-linking")
            self.fs.remove_link(path)
        elif report is not None:
            report.issues.append(f"missing link {path}")
        if not self.fs.is_dir(path):
            self.fs.make_dir(path)
            self.fs.set_owner_and_rights(path, ROOT_OWNER, ROOT_OWNER, MOUNTPOINT_MODE)
        self.fs.create_link(target, path)
        if report is not None:
            report.fixed.append(f"linked {path} -> {target}")
        return True

    def _apply_group_rights(self, username: str, group: str) -> None:
        path = self._entry(username, group)
        self.fs.set_owner_and_rights(
            path, ROOT_OWNER, group, GROUP_MODE,
            acl=[("group", group, "rwx"), ("user", username, "rwx")],
        )

    def _drop_link(self, username: str, name: str) -> bool:
        path = self._entry(username, name)
        if not self.fs.exists(path) and not self.fs.is_link(path):
            return False
        return self.fs.remove_link(path)

    def _revoke_group_rights(self, username: str, group: str) -> None:
        # ACL sedí na globální složce skupiny, stav odkazu nehraje roli
        self.fs.revoke_user_rights(self.conf.group_location(group), username)

    def _drop_foreign_groups(self, username: str, group: Optional[str], report: Optional[RepairReport] = None) -> None:
        for g in self.conf.groups:
            if g == group:
                continue
            self._revoke_group_rights(username, g)
            path = self._entry(username, g)
            if self.fs.exists(path) or self.fs.is_link(path):
                if report is not None:
                    report.issues.append(f"stale link {path} for group '{g}'")
                self.fs.remove_link(path)
                if report is not None:
                    report.fixed.append(f"removed {path}")

    # -----------------------------------------------------------------
    # operace
    # -----------------------------------------------------------------
    def create_user_tree(self, username: str, group: str) -> TreeHandle:
        self._check_group(group)
        if not self.identity.user_exists(username):
            raise NotFoundError(f"User '{username}' does not exist")

        log.info(f"Building tree for '{username}' in group '{group}'")
        self._ensure_root(username)
        self._ensure_private(username)
        self._ensure_link(self.conf.shared_location(), self._entry(username, self.conf.shared_name))
        self._ensure_link(self.conf.group_location(group), self._entry(username, group))
        self._apply_group_rights(username, group)
        self._drop_foreign_groups(username, group)

        return TreeHandle(
            username=username,
            group=group,
            root=self.tree_root(username),
            entries=self.fs.list_dir(self.tree_root(username)),
        )

    def change_group(self, username: str, old_group: Optional[str], new_group: str) -> bool:
        """Swap the group link. Returns False when nothing had to change.

        The new link is created and permissioned before the old one is
        removed, so the tree never lacks a group entry.
        """
        self._check_group(new_group)
        if not self.identity.user_exists(username):
            raise NotFoundError(f"User '{username}' does not exist")
        if old_group == new_group:
            log.info(f"User '{username}' already in group '{new_group}', nothing to do")
            return False

        self._ensure_root(username)
        self._ensure_link(self.conf.group_location(new_group), self._entry(username, new_group))
        self._apply_group_rights(username, new_group)

        if old_group is not None:
            self._revoke_group_rights(username, old_group)
            self._drop_link(username, old_group)
        # pozůstatky po ručních zásazích
        self._drop_foreign_groups(username, new_group)
        log.info(f"User '{username}' moved from '{old_group or 'none'}' to '{new_group}'")
        return True

    def delete_user_tree(self, username: str) -> None:
        root = self.tree_root(username)
        names = [self.conf.shared_name] + list(self.conf.groups)
        for name in names:
            path = self._entry(username, name)
            if name != self.conf.shared_name:
                self._revoke_group_rights(username, name)
            if self._drop_link(username, name):
                log.info(f"Unlinked {path}")
        self.fs.remove_tree(root)
        log.info(f"Tree {root} removed")

    def inspect_tree(self, username: str, group: Optional[str]) -> List[str]:
        """Read-only list of mismatches against the expected layout."""
        issues = []
        root = self.tree_root(username)
        if not self.fs.is_dir(root):
            return [f"missing isolation root {root}"]
        if self.fs.stat_owner(root) != (ROOT_OWNER, ROOT_OWNER, ROOT_MODE):
            issues.append(f"wrong ownership on {root}")

        private = self._entry(username, username)
        if not self.fs.is_dir(private):
            issues.append(f"missing private folder {private}")
        elif self.fs.stat_owner(private) != self._private_expect(username):
            issues.append(f"wrong ownership on {private}")

        shared = self._entry(username, self.conf.shared_name)
        if not self.fs.link_matches(shared, self.conf.shared_location()):
            issues.append(f"bad link {shared}")

        for g in self.conf.groups:
            path = self._entry(username, g)
            if g == group:
                if not self.fs.link_matches(path, self.conf.group_location(g)):
                    issues.append(f"bad link {path}")
            elif self.fs.exists(path) or self.fs.is_link(path):
                issues.append(f"stale link {path}")
        return issues

    def assert_consistent(self, username: str, group: Optional[str]) -> None:
        issues = self.inspect_tree(username, group)
        if issues:
            raise PartialStateError(username, issues)

    def repair_tree(self, username: str, group: Optional[str] = None) -> RepairReport:
        if not self.identity.user_exists(username):
            raise NotFoundError(f"User '{username}' does not exist")
        if group is None:
            group = self.identity.current_group_of(username)
        else:
            self._check_group(group)

        report = RepairReport(username=username)
        self._ensure_root(username, report)
        self._ensure_private(username, report)
        self._ensure_link(self.conf.shared_location(), self._entry(username, self.conf.shared_name), report)
        if group is not None:
            if self._ensure_link(self.conf.group_location(group), self._entry(username, group), report):
                self._apply_group_rights(username, group)
        self._drop_foreign_groups(username, group, report)

        if report.clean:
            log.info(f"Tree of '{username}' is consistent")
        else:
            log.warning(f"Tree of '{username}' repaired: {'; '.join(report.issues)}")
        return report
