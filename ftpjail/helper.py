import os
import logging
import subprocess
from logging.handlers import RotatingFileHandler
from typing import List, Optional, Union

from .ftp.errors import ExternalToolFailure, PrivilegeError

LOG_FILE = "/var/log/ftpmng.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_ROOT_LOGGER = "ftpmng"


def initLogging(toConsole: bool = False, log_level: int = logging.DEBUG, logFile: Optional[str] = LOG_FILE) -> logging.Logger:
    """Nastaví logování celé aplikace.

    Args:
        toConsole (bool): Pokud True, logy jdou i na stderr.
        log_level (int): Minimální úroveň logování.
        logFile (str|None): Cesta k log souboru, None = bez souboru.
            Pokud soubor nejde otevřít (chybí práva), použije se jen konzole.
    Returns:
        logging.Logger: kořenový logger aplikace
    """
    log = logging.getLogger(_ROOT_LOGGER)
    log.setLevel(log_level)
    for h in list(log.handlers):
        log.removeHandler(h)
        h.close()

    fmt = logging.Formatter(LOG_FORMAT)
    if logFile:
        try:
            os.makedirs(os.path.dirname(logFile) or ".", exist_ok=True)
            fh = RotatingFileHandler(logFile, maxBytes=1024 * 1024, backupCount=3, encoding="utf-8")
            fh.setFormatter(fmt)
            log.addHandler(fh)
        except OSError:
            toConsole = True

    if toConsole:
        ch = logging.StreamHandler()
        ch.setFormatter(fmt)
        log.addHandler(ch)

    if not log.handlers:
        log.addHandler(logging.NullHandler())
    log.propagate = False
    return log


def getLogger(name: str) -> logging.Logger:
    """Vrátí child logger aplikace, např. getLogger("jail") -> ftpmng.jail"""
    return logging.getLogger(f"{_ROOT_LOGGER}.{name}")


log = getLogger("helper")


def run(cmd: Union[str, List[str]], input: Optional[str] = None, env: Optional[dict] = None) -> str:
    """Spustí externí příkaz a vrátí stdout.

    Args:
        cmd (str|list): příkaz, string se rozdělí podle mezer
        input (str|None): data na stdin (např. pro chpasswd)
        env (dict|None): doplňkové proměnné prostředí
    Returns:
        str: stdout příkazu (bez koncových mezer)
    Raises:
        ExternalToolFailure: příkaz neexistuje nebo skončil nenulovým kódem
    """
    if isinstance(cmd, str):
        cmd = cmd.split()
    full_env = None
    if env:
        full_env = dict(os.environ)
        full_env.update(env)

    log.debug(f"[CMD] {' '.join(cmd)}")
    try:
        p = subprocess.run(cmd, input=input, capture_output=True, text=True, env=full_env)
    except OSError as e:
        raise ExternalToolFailure(f"Cannot execute {cmd[0]}: {e}") from e

    if p.returncode != 0:
        err = (p.stderr or p.stdout or "").strip()
        raise ExternalToolFailure(f"Command '{' '.join(cmd)}' failed ({p.returncode}): {err}")
    return p.stdout.rstrip()


def runRet(cmd: Union[str, List[str]]) -> Optional[str]:
    """Jako run(), ale při chybě vrací None místo výjimky."""
    try:
        return run(cmd)
    except ExternalToolFailure as e:
        log.debug(str(e))
        return None


def is_root() -> bool:
    return os.geteuid() == 0


def require_root() -> None:
    """Ukončí běh před jakoukoli změnou systému, pokud nejsme root."""
    if not is_root():
        raise PrivilegeError("Administrative privilege required, run as root (sudo).")
