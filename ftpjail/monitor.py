"""Monitoring of the running vsftpd, read-only helpers for the console menu."""
import os
from collections import deque

from . import helper
from .ftp.parser import FtpConfig

FTP_PORT = 21
LOG_LINES = 40


def service_status() -> str:
    out = helper.runRet(["systemctl", "status", "vsftpd", "--no-pager"])
    return out if out else "(vsftpd status not available)"


def active_connections(port: int = FTP_PORT) -> str:
    out = helper.runRet(["ss", "-tnp", f"( sport = :{port} or dport = :{port} )"])
    if out is None:
        out = helper.runRet(["netstat", "-tnp"])
        if out is not None:
            out = "\n".join(line for line in out.splitlines() if f":{port} " in line)
    return out if out else "(no active FTP connections)"


def log_tail(conf: FtpConfig, lines: int = LOG_LINES) -> str:
    """Posledních N řádků logu vsftpd, jinak journal."""
    if os.path.isfile(conf.vsftpd_log):
        with open(conf.vsftpd_log, encoding="utf-8", errors="replace") as f:
            return "".join(deque(f, maxlen=lines)).rstrip() or "(log is empty)"
    out = helper.runRet(["journalctl", "-u", "vsftpd", "-n", str(lines), "--no-pager"])
    return out if out else "(log not available)"


def group_members(conf: FtpConfig, identity) -> str:
    rows = []
    for g in conf.groups:
        members = identity.members_of(g)
        rows.append(f"  {g}: {', '.join(members) if members else '<no users>'}")
    return "\n".join(rows)


def active_links(conf: FtpConfig, fs) -> str:
    links = fs.active_links(conf.home_root)
    rows = [f"  {src} -> {dst}" for src, dst in links if src.startswith(conf.ftp_root)]
    return "\n".join(rows) if rows else "  (none)"
