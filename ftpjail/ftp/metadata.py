import os
import json
from typing import List, Optional

from .parser import FtpConfig

USER_TPL = """# Auto-generated vsftpd user config for: {user}
# group: {group}
local_root={root}
write_enable=YES
"""

ANON_TPL = """# Auto-generated vsftpd anonymous config
anon_root={root}
anon_upload_enable=NO
anon_mkdir_write_enable=NO
anon_other_write_enable=NO
"""


class VsftpdRuleStore:
    """Authorization rules persisted per identity.

    The rule set itself is kept as JSON in `metadata_dir/<identity>.json`,
    the daemon sees it through `user_config_dir/<identity>` rendered from
    the same data.
    """

    def __init__(self, conf: FtpConfig):
        self.conf = conf

    def _meta_path(self, identity: str) -> str:
        return os.path.join(self.conf.metadata_dir, f"{identity}.json")

    def _daemon_path(self, identity: str) -> str:
        return os.path.join(self.conf.user_config_dir, identity)

    def load(self, identity: str) -> Optional[dict]:
        path = self._meta_path(identity)
        if not os.path.exists(path):
            return None
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    def save(self, identity: str, data: dict) -> str:
        os.makedirs(self.conf.metadata_dir, exist_ok=True)
        os.makedirs(self.conf.user_config_dir, exist_ok=True)

        path = self._meta_path(identity)
        tmp = path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=4)
        os.replace(tmp, path)

        with open(self._daemon_path(identity), "w", encoding="utf-8") as f:
            f.write(self.render(identity, data))
        return path

    def render(self, identity: str, data: dict) -> str:
        if data.get("anonymous"):
            return ANON_TPL.format(root=data["root"])
        return USER_TPL.format(user=identity, group=data.get("group") or "-", root=data["root"])

    def delete(self, identity: str) -> bool:
        removed = False
        for path in (self._meta_path(identity), self._daemon_path(identity)):
            if os.path.exists(path):
                os.remove(path)
                removed = True
        return removed

    def identities(self) -> List[str]:
        if not os.path.isdir(self.conf.metadata_dir):
            return []
        return sorted(
            f[:-len(".json")] for f in os.listdir(self.conf.metadata_dir) if f.endswith(".json")
        )
