import os
import re
import configparser
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .. import glb
from .errors import FtpConfigError, ValidationError

USERNAME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]{0,%d}$" % (glb.USERNAME_MAX - 1))


@dataclass(frozen=True)
class FtpConfig:
    """Immutable runtime configuration injected into every component."""
    ftp_root: str = glb.FTP_ROOT
    home_root: str = glb.HOME_ROOT
    tree_dir: str = glb.TREE_DIR
    shared_name: str = glb.SHARED_NAME
    groups: Tuple[str, ...] = glb.GROUPS
    vsftpd_conf: str = glb.VSFTPD_CONF
    user_config_dir: str = glb.VSFTPD_USER_CONF_DIR
    vsftpd_log: str = glb.VSFTPD_LOG
    metadata_dir: str = glb.METADATA_DIR
    fstab: str = glb.FSTAB
    pasv_min: int = glb.PASV_MIN
    pasv_max: int = glb.PASV_MAX
    pasv_address: Optional[str] = None
    banner: str = "Welcome to the FTP server"
    anon_identity: str = field(default=glb.ANON_IDENTITY)

    def shared_location(self) -> str:
        return os.path.join(self.ftp_root, self.shared_name)

    def group_location(self, group: str) -> str:
        return os.path.join(self.ftp_root, group)

    def home_of(self, username: str) -> str:
        return os.path.join(self.home_root, username)

    def tree_root(self, username: str) -> str:
        return os.path.join(self.home_root, username, self.tree_dir)


def _int(section: configparser.SectionProxy, key: str, default: int) -> int:
    raw = section.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise FtpConfigError(f"[{section.name}] {key} must be an integer, got '{raw}'")


def load_config(path: Optional[str] = None) -> FtpConfig:
    """Load configuration from an INI file.

    Missing file means built-in defaults. Known sections are
    [general] (ftp_root, home_root, groups, ...) and [vsftpd].
    """
    path = path or glb.CONFIG_FILE
    if not os.path.exists(path):
        return validate_config(FtpConfig())

    cfg = configparser.ConfigParser()
    try:
        cfg.read(path, encoding="utf-8")
    except configparser.Error as e:
        raise FtpConfigError(f"Cannot parse config file {path}: {e}")

    general = cfg["general"] if "general" in cfg else cfg[cfg.default_section]
    vs = cfg["vsftpd"] if "vsftpd" in cfg else cfg[cfg.default_section]

    groups = glb.GROUPS
    raw_groups = general.get("groups", "").strip()
    if raw_groups:
        groups = tuple(g.strip() for g in raw_groups.split(",") if g.strip())

    defaults = FtpConfig()
    conf = FtpConfig(
        ftp_root=general.get("ftp_root", defaults.ftp_root).strip(),
        home_root=general.get("home_root", defaults.home_root).strip(),
        tree_dir=general.get("tree_dir", defaults.tree_dir).strip(),
        shared_name=general.get("shared_name", defaults.shared_name).strip(),
        groups=groups,
        metadata_dir=general.get("metadata_dir", defaults.metadata_dir).strip(),
        fstab=general.get("fstab", defaults.fstab).strip(),
        vsftpd_conf=vs.get("conf", defaults.vsftpd_conf).strip(),
        user_config_dir=vs.get("user_config_dir", defaults.user_config_dir).strip(),
        vsftpd_log=vs.get("log_file", defaults.vsftpd_log).strip(),
        pasv_min=_int(vs, "pasv_min", defaults.pasv_min),
        pasv_max=_int(vs, "pasv_max", defaults.pasv_max),
        pasv_address=vs.get("pasv_address", "").strip() or None,
        banner=vs.get("banner", defaults.banner).strip(),
    )
    return validate_config(conf)


def validate_config(conf: FtpConfig) -> FtpConfig:
    if not conf.groups:
        raise FtpConfigError("At least one group must be configured")
    if len(set(conf.groups)) != len(conf.groups):
        raise FtpConfigError(f"Duplicate group names: {', '.join(conf.groups)}")
    for g in conf.groups:
        if not USERNAME_RE.match(g):
            raise FtpConfigError(f"Invalid group name: '{g}'")
        if g == conf.shared_name:
            raise FtpConfigError(f"Group name collides with the shared folder: '{g}'")
    for p in (conf.ftp_root, conf.home_root):
        if not os.path.isabs(p):
            raise FtpConfigError(f"Path must be absolute: '{p}'")
    if not (1024 <= conf.pasv_min <= conf.pasv_max <= 65535):
        raise FtpConfigError(f"Invalid passive port range {conf.pasv_min}-{conf.pasv_max}")
    return conf


# -----------------------------------------------------------------
# validace vstupů
# -----------------------------------------------------------------

def validate_username(name: str, conf: Optional[FtpConfig] = None) -> str:
    """Check username format; with `conf` also reject names of tree entries."""
    name = (name or "").strip()
    if not USERNAME_RE.match(name):
        raise ValidationError(
            f"Invalid username '{name}'. Use letters, digits, _ or - "
            f"(must start with a letter, max {glb.USERNAME_MAX} chars)."
        )
    if conf is not None and (name == conf.shared_name or name in conf.groups):
        # privátní složka by kolidovala s odkazem general/<group>
        raise ValidationError(f"Username '{name}' is reserved (shared or group folder name).")
    if conf is not None and name == conf.anon_identity:
        raise ValidationError(f"Username '{name}' is reserved (anonymous FTP account).")
    return name


def validate_password(password: str) -> str:
    if password is None or len(password) < glb.PASSWORD_MIN:
        raise ValidationError(f"Password too short (minimum {glb.PASSWORD_MIN} characters).")
    if "\n" in password:
        raise ValidationError("Password must not contain line breaks.")
    return password


def validate_group(conf: FtpConfig, group: str) -> str:
    group = (group or "").strip()
    if group not in conf.groups:
        raise ValidationError(f"Unknown group '{group}', choose one of: {', '.join(conf.groups)}")
    return group


def validate_int(value: str, min_v: int, max_v: int) -> int:
    try:
        n = int(str(value).strip())
    except ValueError:
        raise ValidationError(f"Not a number: '{value}'")
    if not (min_v <= n <= max_v):
        raise ValidationError(f"Number out of range ({min_v}-{max_v}): {n}")
    return n
