"""In-memory stand-ins for the host filesystem and the OS identity store."""
import copy
import os

from ftpjail.ftp.errors import AlreadyExistsError, ExternalToolFailure, NotFoundError


class Node:
    def __init__(self, owner="root", group="root", mode=0o755):
        self.owner = owner
        self.group = group
        self.mode = mode
        self.acl = set()

    def __eq__(self, other):
        return isinstance(other, Node) and vars(self) == vars(other)

    def __repr__(self):
        return f"Node({self.owner}:{self.group} {oct(self.mode)} acl={sorted(self.acl)})"


class MemoryFs:
    """Directories, bind links and their fstab registrations kept in dicts.

    A linked path resolves ownership and ACL calls to the target node, as a
    bind mount does on the host.
    """

    def __init__(self):
        self.nodes = {"/": Node()}
        self.mounts = {}
        self.fstab = {}
        self.calls = []
        self._failures = {}

    # -- test helpers ------------------------------------------------
    def fail_once(self, op, path):
        self._failures[(op, path)] = True

    def _maybe_fail(self, op, path):
        if self._failures.pop((op, path), False):
            raise ExternalToolFailure(f"simulated failure of {op} on {path}")

    def snapshot(self):
        return copy.deepcopy((self.nodes, self.mounts, self.fstab))

    def _effective(self, path):
        return self.nodes[self.mounts.get(path, path)]

    # -- read --------------------------------------------------------
    def exists(self, path):
        return path in self.nodes

    def is_dir(self, path):
        return path in self.nodes

    def list_dir(self, path):
        return sorted(os.path.basename(p) for p in self.nodes if p != "/" and os.path.dirname(p) == path)

    def stat_owner(self, path):
        n = self._effective(path)
        return n.owner, n.group, n.mode

    def is_link(self, path):
        return path in self.mounts or path in self.fstab

    def link_matches(self, path, target):
        return (
            target in self.nodes
            and self.mounts.get(path) == target
            and self.fstab.get(path) == target
        )

    def active_links(self, prefix):
        prefix = prefix.rstrip("/") + "/"
        return [(t, p) for p, t in sorted(self.fstab.items()) if p.startswith(prefix)]

    # -- write -------------------------------------------------------
    def make_dir(self, path):
        self.calls.append(("make_dir", path))
        self._maybe_fail("make_dir", path)
        if path in self.nodes:
            return False
        parent = os.path.dirname(path)
        if parent not in self.nodes:
            self.make_dir(parent)
        self.nodes[path] = Node()
        return True

    def set_owner_and_rights(self, path, owner, group, mode, acl=()):
        self.calls.append(("set_owner_and_rights", path))
        self._maybe_fail("set_owner_and_rights", path)
        n = self._effective(path)
        n.owner, n.group, n.mode = owner, group, mode
        n.acl.update(acl)

    def revoke_user_rights(self, path, username):
        self.calls.append(("revoke_user_rights", path))
        if path not in self.nodes:
            return
        n = self._effective(path)
        n.acl = {e for e in n.acl if not (e[0] == "user" and e[1] == username)}

    def create_link(self, target, path):
        self.calls.append(("create_link", path))
        self._maybe_fail("create_link", path)
        if target not in self.nodes:
            raise ExternalToolFailure(f"Link target does not exist: {target}")
        self.make_dir(path)
        self.mounts[path] = target
        self.fstab[path] = target

    def remove_link(self, path):
        self.calls.append(("remove_link", path))
        self._maybe_fail("remove_link", path)
        removed = self.mounts.pop(path, None) is not None
        removed = self.fstab.pop(path, None) is not None or removed
        if path in self.nodes:
            if self.list_dir(path):
                raise ExternalToolFailure(f"Mount point {path} is not empty after unmount")
            del self.nodes[path]
            removed = True
        return removed

    def remove_dir(self, path):
        self.nodes.pop(path, None)

    def remove_tree(self, path):
        self.calls.append(("remove_tree", path))
        prefix = path.rstrip("/") + "/"
        for m in self.mounts:
            if m == path or m.startswith(prefix):
                raise ExternalToolFailure(f"Refusing to delete {path}: {m} is still mounted")
        for p in list(self.nodes):
            if p == path or p.startswith(prefix):
                del self.nodes[p]


class MemoryIdentity:
    def __init__(self, conf):
        self.conf = conf
        self.users = {}
        self.groups = {}

    def user_exists(self, username):
        return username in self.users

    def group_exists(self, group):
        return group in self.groups

    def create_user(self, username, password):
        if username in self.users:
            raise AlreadyExistsError(f"User '{username}' already exists")
        self.users[username] = {"password": password, "primary": username}
        self.groups.setdefault(username, set())
        return self.conf.home_of(username)

    def set_password(self, username, password):
        self._require(username)
        self.users[username]["password"] = password

    def delete_user(self, username):
        self._require(username)
        del self.users[username]
        for members in self.groups.values():
            members.discard(username)

    def _require(self, username):
        if username not in self.users:
            raise NotFoundError(f"User '{username}' does not exist")

    def ensure_group(self, group):
        if group in self.groups:
            return False
        self.groups[group] = set()
        return True

    def add_to_group(self, username, group):
        self._require(username)
        if group not in self.groups:
            raise NotFoundError(f"Group '{group}' does not exist")
        self.groups[group].add(username)

    def remove_from_group(self, username, group):
        self._require(username)
        self.groups.get(group, set()).discard(username)

    def members_of(self, group):
        return sorted(self.groups.get(group, ()))

    def primary_group(self, username):
        self._require(username)
        return self.users[username]["primary"]

    def memberships(self, username):
        return [g for g in self.conf.groups if username in self.groups.get(g, ())]

    def current_group_of(self, username):
        groups = self.memberships(username)
        return groups[0] if groups else None

    def ftp_users(self):
        out, seen = [], set()
        for g in self.conf.groups:
            for u in self.members_of(g):
                if u not in seen:
                    seen.add(u)
                    out.append((u, g))
        return out
