import os
import shutil
import datetime
from dataclasses import dataclass
from typing import Optional

from .. import helper
from ..outcome import Outcome
from .parser import FtpConfig
from .errors import ExternalToolFailure

log = helper.getLogger("vsftpd")

PACKAGE = "vsftpd"
SERVICE = "vsftpd"

TPL = """# ============================================================
# vsftpd.conf - generated by ftpmng, manual changes are lost
# ============================================================

listen=YES
listen_ipv6=NO

# local access and write
anonymous_enable={anonymous_enable}
local_enable=YES
write_enable=YES
local_umask=022
dirmessage_enable=YES
use_localtime=YES
xferlog_enable=YES
xferlog_file={log_file}
connect_from_port_20=YES
idle_session_timeout=600
data_connection_timeout=120

# anonymous (read-only on {shared_root})
anon_root={shared_root}
anon_upload_enable=NO
anon_mkdir_write_enable=NO
anon_other_write_enable=NO

# chroot per user ({user_root})
chroot_local_user={chroot_local_user}
allow_writeable_chroot={allow_writeable_chroot}
chroot_list_enable=NO
user_sub_token=$USER
local_root={user_root}
user_config_dir={user_config_dir}

# passive mode
pasv_enable=YES
pasv_min_port={pasv_min}
pasv_max_port={pasv_max}
{pasv_address}
# security
ftpd_banner={banner}
pam_service_name=vsftpd
"""


@dataclass(frozen=True)
class VsftpdParams:
    shared_root: str
    user_root: str
    user_config_dir: str
    pasv_min: int
    pasv_max: int
    pasv_address: Optional[str] = None
    chroot_local_user: bool = True
    allow_writeable_chroot: bool = False
    anonymous_enable: bool = True
    banner: str = "Welcome to the FTP server"
    log_file: str = "/var/log/vsftpd.log"

    @classmethod
    def from_config(cls, conf: FtpConfig, pasv_address: Optional[str] = None) -> "VsftpdParams":
        return cls(
            shared_root=conf.shared_location(),
            user_root=os.path.join(conf.home_root, "$USER", conf.tree_dir),
            user_config_dir=conf.user_config_dir,
            pasv_min=conf.pasv_min,
            pasv_max=conf.pasv_max,
            pasv_address=pasv_address or conf.pasv_address,
            banner=conf.banner,
            log_file=conf.vsftpd_log,
        )


def _yn(v: bool) -> str:
    return "YES" if v else "NO"


def detect_server_ip() -> Optional[str]:
    out = helper.runRet(["hostname", "-I"])
    if not out:
        return None
    parts = out.split()
    return parts[0] if parts else None


class VsftpdService:
    """Install, configure and restart the vsftpd daemon."""

    def __init__(self, conf: FtpConfig):
        self.conf = conf

    def is_installed(self) -> bool:
        return helper.runRet(["dpkg", "-s", PACKAGE]) is not None

    def is_active(self) -> bool:
        return helper.runRet(["systemctl", "is-active", "--quiet", SERVICE]) is not None

    def ensure_installed(self) -> bool:
        """Returns True when the package had to be installed."""
        installed = False
        if self.is_installed():
            log.info(f"{PACKAGE} already installed")
        else:
            log.info(f"Installing {PACKAGE}")
            env = {"DEBIAN_FRONTEND": "noninteractive"}
            helper.run(["apt-get", "update", "-y", "-q"], env=env)
            helper.run(["apt-get", "install", "-y", "-q", PACKAGE], env=env)
            if not self.is_installed():
                raise ExternalToolFailure(f"{PACKAGE} is still not installed after apt-get")
            installed = True
        helper.run(["systemctl", "enable", SERVICE])
        helper.runRet(["systemctl", "start", SERVICE])
        return installed

    def render_configuration(self, params: VsftpdParams) -> str:
        return TPL.format(
            anonymous_enable=_yn(params.anonymous_enable),
            log_file=params.log_file,
            shared_root=params.shared_root,
            chroot_local_user=_yn(params.chroot_local_user),
            allow_writeable_chroot=_yn(params.allow_writeable_chroot),
            user_root=params.user_root,
            user_config_dir=params.user_config_dir,
            pasv_min=params.pasv_min,
            pasv_max=params.pasv_max,
            pasv_address=f"pasv_address={params.pasv_address}\n" if params.pasv_address else "",
            banner=params.banner,
        )

    def apply_configuration(self, params: VsftpdParams) -> Optional[str]:
        """Write vsftpd.conf. Returns backup path of the previous file, or
        None when nothing was written (content unchanged) or no file existed.
        """
        path = self.conf.vsftpd_conf
        content = self.render_configuration(params)
        backup = None
        try:
            if os.path.exists(path):
                with open(path, encoding="utf-8") as f:
                    if f.read() == content:
                        log.info(f"{path} is up to date")
                        return None
                stamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
                backup = f"{path}.bak.{stamp}"
                shutil.copy2(path, backup)
                log.info(f"Backup created: {backup}")
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            os.makedirs(params.user_config_dir, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            raise ExternalToolFailure(f"Cannot write {path}: {e}") from e
        log.info(f"{path} written")
        return backup

    def restart_service(self):
        """systemctl restart, one retry on failure."""
        last = None
        for attempt in (1, 2):
            try:
                helper.run(["systemctl", "restart", SERVICE])
                log.info(f"{SERVICE} restarted (attempt {attempt})")
                return Outcome.ok(f"{SERVICE} restarted")
            except ExternalToolFailure as e:
                last = e
                log.warning(f"{SERVICE} restart attempt {attempt} failed: {e}")
        return Outcome.failure(f"{SERVICE} restart failed: {last}")
