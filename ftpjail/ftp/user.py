import pwd
import grp
from typing import List, Optional

from .. import helper
from .parser import FtpConfig
from .errors import AlreadyExistsError, NotFoundError

log = helper.getLogger("user")

NOLOGIN_SHELL = "/usr/sbin/nologin"


class OsIdentityStore:
    """OS users and groups through pwd/grp and the shadow-utils tools."""

    def __init__(self, conf: FtpConfig):
        self.conf = conf

    def user_exists(self, username: str) -> bool:
        try:
            pwd.getpwnam(username)
            return True
        except KeyError:
            return False

    def group_exists(self, group: str) -> bool:
        try:
            grp.getgrnam(group)
            return True
        except KeyError:
            return False

    def _require_user(self, username: str) -> None:
        if not self.user_exists(username):
            raise NotFoundError(f"User '{username}' does not exist")

    def create_user(self, username: str, password: str) -> str:
        if self.user_exists(username):
            raise AlreadyExistsError(f"User '{username}' already exists")
        home_path = self.conf.home_of(username)
        helper.run([
            "useradd",
            "-m",
            "-d", home_path,
            "-s", NOLOGIN_SHELL,
            username
        ])
        self.set_password(username, password)
        log.info(f"User '{username}' created, home {home_path}")
        return home_path

    def set_password(self, username: str, password: str) -> None:
        self._require_user(username)
        helper.run(["chpasswd"], input=f"{username}:{password}\n")

    def delete_user(self, username: str) -> None:
        """userdel -r, smaže i home (ftp strom už musí být odpojený)."""
        self._require_user(username)
        helper.run(["userdel", "-r", username])
        log.info(f"User '{username}' deleted")

    def ensure_group(self, group: str) -> bool:
        if self.group_exists(group):
            return False
        helper.run(["groupadd", group])
        log.info(f"Group '{group}' created")
        return True

    def add_to_group(self, username: str, group: str) -> None:
        self._require_user(username)
        if not self.group_exists(group):
            raise NotFoundError(f"Group '{group}' does not exist")
        if group in self.memberships(username):
            return
        helper.run(["usermod", "-aG", group, username])

    def remove_from_group(self, username: str, group: str) -> None:
        self._require_user(username)
        if username not in self.members_of(group):
            return
        helper.run(["gpasswd", "-d", username, group])

    def members_of(self, group: str) -> List[str]:
        try:
            return list(grp.getgrnam(group).gr_mem)
        except KeyError:
            return []

    def primary_group(self, username: str) -> str:
        try:
            gid = pwd.getpwnam(username).pw_gid
        except KeyError:
            raise NotFoundError(f"User '{username}' does not exist")
        try:
            return grp.getgrgid(gid).gr_name
        except KeyError:
            return str(gid)

    def memberships(self, username: str) -> List[str]:
        """Configured groups the user is a member of, in configuration order."""
        return [g for g in self.conf.groups if username in self.members_of(g)]

    def current_group_of(self, username: str) -> Optional[str]:
        groups = self.memberships(username)
        if len(groups) > 1:
            log.warning(f"User '{username}' is a member of several FTP groups {groups}, using '{groups[0]}'")
        return groups[0] if groups else None

    def ftp_users(self) -> List[tuple]:
        """(username, group) for every member of a configured group."""
        out = []
        seen = set()
        for g in self.conf.groups:
            for u in self.members_of(g):
                if u in seen:
                    continue
                seen.add(u)
                out.append((u, g))
        return out
