import os
import pwd
import grp
import shutil
import tempfile
from typing import Iterable, List, Tuple

from .. import helper
from .errors import ExternalToolFailure

log = helper.getLogger("mounts")

AclEntry = Tuple[str, str, str]
"""(kind, name, perms), kind je 'user' nebo 'group', perms např. 'rwx'"""


class FstabRegistry:
    """Persisted bind registrations: `<src> <dst> none bind 0 0` lines in fstab."""

    def __init__(self, path: str):
        self.path = path

    @staticmethod
    def entry(src: str, dst: str) -> str:
        return f"{src} {dst} none bind 0 0"

    def _lines(self) -> List[str]:
        if not os.path.exists(self.path):
            return []
        with open(self.path, encoding="utf-8") as f:
            return f.read().splitlines()

    def _write(self, lines: List[str]) -> None:
        # zapisujeme přes dočasný soubor, fstab nesmí zůstat rozbitý
        d = os.path.dirname(self.path) or "."
        fd, tmp = tempfile.mkstemp(prefix=".fstab.", dir=d)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write("\n".join(lines) + ("\n" if lines else ""))
            if os.path.exists(self.path):
                shutil.copymode(self.path, tmp)
            os.replace(tmp, self.path)
        except OSError:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    @staticmethod
    def _parse(line: str):
        parts = line.split()
        if len(parts) < 4 or line.lstrip().startswith("#"):
            return None
        if "bind" not in parts[3].split(","):
            return None
        return parts[0], parts[1]

    def source_of(self, dst: str):
        """Source registered for a bind target, or None."""
        for line in self._lines():
            p = self._parse(line)
            if p and p[1] == dst:
                return p[0]
        return None

    def has(self, src: str, dst: str) -> bool:
        return self.source_of(dst) == src

    def add(self, src: str, dst: str) -> bool:
        """Register the bind; a stale registration of the same dst is replaced.

        Returns False when the exact entry was already present.
        """
        lines = self._lines()
        kept = []
        found = False
        for line in lines:
            p = self._parse(line)
            if p and p[1] == dst:
                if p[0] == src and not found:
                    found = True
                    kept.append(line)
                continue
            kept.append(line)
        if found and len(kept) == len(lines):
            return False
        if not found:
            kept.append(self.entry(src, dst))
            log.info(f"fstab: {src} -> {dst}")
        self._write(kept)
        return not found

    def remove(self, dst: str) -> bool:
        lines = self._lines()
        kept = []
        for line in lines:
            p = self._parse(line)
            if p and p[1] == dst:
                continue
            kept.append(line)
        if len(kept) == len(lines):
            return False
        self._write(kept)
        log.info(f"fstab: removed bind on {dst}")
        return True

    def entries_under(self, prefix: str) -> List[Tuple[str, str]]:
        prefix = prefix.rstrip("/") + "/"
        out = []
        for line in self._lines():
            p = self._parse(line)
            if p and (p[1] + "/").startswith(prefix):
                out.append(p)
        return out


class HostFs:
    """Filesystem capability on the real host.

    Links are bind mounts plus an fstab registration so they survive
    reboot. Ownership uses chown/chmod, extra rights use POSIX ACLs
    (setfacl).
    """

    def __init__(self, fstab_path: str):
        self.fstab = FstabRegistry(fstab_path)

    # -- čtení -----------------------------------------------------
    def exists(self, path: str) -> bool:
        return os.path.lexists(path)

    def is_dir(self, path: str) -> bool:
        return os.path.isdir(path)

    def list_dir(self, path: str) -> List[str]:
        return sorted(os.listdir(path))

    def stat_owner(self, path: str) -> Tuple[str, str, int]:
        st = os.stat(path)
        try:
            owner = pwd.getpwuid(st.st_uid).pw_name
        except KeyError:
            owner = str(st.st_uid)
        try:
            group = grp.getgrgid(st.st_gid).gr_name
        except KeyError:
            group = str(st.st_gid)
        return owner, group, st.st_mode & 0o7777

    def is_mounted(self, path: str) -> bool:
        return os.path.ismount(path)

    def is_link(self, path: str) -> bool:
        return self.is_mounted(path) or self.fstab.source_of(path) is not None

    def link_matches(self, path: str, target: str) -> bool:
        """Mounted, same inode as target, and registered in fstab."""
        if not self.is_mounted(path) or not os.path.isdir(target):
            return False
        a = os.stat(path)
        b = os.stat(target)
        if (a.st_dev, a.st_ino) != (b.st_dev, b.st_ino):
            return False
        return self.fstab.has(target, path)

    # -- změny -----------------------------------------------------
    def make_dir(self, path: str) -> bool:
        if os.path.isdir(path):
            return False
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as e:
            raise ExternalToolFailure(f"Cannot create directory {path}: {e}") from e
        return True

    def set_owner_and_rights(self, path: str, owner: str, group: str, mode: int, acl: Iterable[AclEntry] = ()) -> None:
        try:
            uid = pwd.getpwnam(owner).pw_uid
            gid = grp.getgrnam(group).gr_gid
            os.chown(path, uid, gid)
            os.chmod(path, mode)
        except (KeyError, OSError) as e:
            raise ExternalToolFailure(f"Cannot set {owner}:{group} {oct(mode)} on {path}: {e}") from e
        specs = [f"{'u' if kind == 'user' else 'g'}:{name}:{perms}" for kind, name, perms in acl]
        if specs:
            spec = ",".join(specs)
            # default ACL aby nově vytvořené soubory zdědily práva
            helper.run(["setfacl", "-m", spec, path])
            helper.run(["setfacl", "-d", "-m", spec, path])

    def revoke_user_rights(self, path: str, username: str) -> None:
        if not os.path.isdir(path):
            return
        try:
            pwd.getpwnam(username)
        except KeyError:
            # setfacl nepřijme jméno, které už nejde přeložit (uživatel smazán)
            log.warning(f"User '{username}' no longer resolves, ACL on {path} left as is")
            return
        # setfacl -x na neexistující záznam není chyba
        helper.run(["setfacl", "-x", f"u:{username}", path])
        helper.runRet(["setfacl", "-d", "-x", f"u:{username}", path])

    def create_link(self, target: str, path: str) -> None:
        if not os.path.isdir(target):
            raise ExternalToolFailure(f"Link target does not exist: {target}")
        self.make_dir(path)
        if self.is_mounted(path):
            a, b = os.stat(path), os.stat(target)
            if (a.st_dev, a.st_ino) != (b.st_dev, b.st_ino):
                helper.run(["umount", path])
        if not self.is_mounted(path):
            helper.run(["mount", "--bind", target, path])
            log.info(f"bind mount {target} -> {path}")
        try:
            self.fstab.add(target, path)
        except OSError as e:
            raise ExternalToolFailure(f"Cannot update {self.fstab.path}: {e}") from e

    def remove_link(self, path: str) -> bool:
        """Unmount, unregister and rmdir the empty mount point.

        Never recurses into the linked storage. Missing link is not an error.
        """
        removed = False
        if self.is_mounted(path):
            helper.run(["umount", path])
            removed = True
        try:
            removed = self.fstab.remove(path) or removed
        except OSError as e:
            raise ExternalToolFailure(f"Cannot update {self.fstab.path}: {e}") from e
        if os.path.isdir(path):
            try:
                os.rmdir(path)
            except OSError as e:
                raise ExternalToolFailure(f"Mount point {path} is not empty after unmount: {e}") from e
            removed = True
        return removed

    def remove_dir(self, path: str) -> None:
        if os.path.isdir(path):
            os.rmdir(path)

    def remove_tree(self, path: str) -> None:
        if not os.path.lexists(path):
            return
        # pojistka: pod stromem nesmí být aktivní bind mount
        for dirpath, dirnames, _ in os.walk(path):
            for d in dirnames:
                full = os.path.join(dirpath, d)
                if os.path.ismount(full):
                    raise ExternalToolFailure(f"Refusing to delete {path}: {full} is still mounted")
        try:
            shutil.rmtree(path)
        except OSError as e:
            raise ExternalToolFailure(f"Cannot remove {path}: {e}") from e

    def active_links(self, prefix: str) -> List[Tuple[str, str]]:
        return self.fstab.entries_under(prefix)
