import os
import re
import getpass
from typing import Any, List, Union

from . import glb
from .outcome import Outcome, OK, WARNING, FAILURE, NOOP
from .ftp import parser
from .ftp.parser import FtpConfig
from .ftp.errors import ValidationError

GREEN = "\033[0;32m"
CYAN = "\033[0;36m"
YELLOW = "\033[1;33m"
RED = "\033[0;31m"
RESET = "\033[0m"

MENU_LEN = 60

_STATUS_FMT = {
    OK: (GREEN, "[OK]  "),
    NOOP: (YELLOW, "[WARN]"),
    WARNING: (YELLOW, "[WARN]"),
    FAILURE: (RED, "[ERR] "),
}


def cls() -> None:
    os.system("clear" if os.name != "nt" else "cls")


def anyKey() -> None:
    input("Press Enter to continue...")


def info(msg: str) -> None:
    print(f"{CYAN}[INFO] {msg}{RESET}")


def warn(msg: str) -> None:
    print(f"{YELLOW}[WARN] {msg}{RESET}")


def render_outcome(outcome: Outcome) -> str:
    color, label = _STATUS_FMT.get(outcome.status, (RED, "[ERR] "))
    lines = [f"{color}{label} {outcome.message}{RESET}"]
    for d in outcome.details:
        lines.append(f"       {d}")
    return "\n".join(lines)


def show(outcome: Outcome) -> None:
    print(render_outcome(outcome))


def separator() -> None:
    print("-" * MENU_LEN)


def banner() -> None:
    print("")
    print("=" * MENU_LEN)
    print(f"FTP SERVER MANAGER (vsftpd)  v{glb.VERSION}".center(MENU_LEN))
    print("=" * MENU_LEN)
    print("")


# -----------------------------------------------------------------
# menu
# -----------------------------------------------------------------

def _printLine(option: str) -> None:
    # formát znak+\n+počet[+zarovnání] → vytvoříme řádek
    match = re.match(r"^(.+)\n(\d+)([crl]?)$", option)
    if not match:
        print(option)
        return
    char = str(match.group(1))
    count = int(match.group(2))
    if count == 0:
        count = MENU_LEN
    align = match.group(3)
    if align == 'c':
        print(char.center(count))
    elif align == 'r':
        print(char.rjust(count))
    elif align == 'l':
        print(char)
    else:
        print(char * count)


def menu(header: list, options: List[Union[str, tuple, list]], prompt: str = "Option: ", clear: bool = True) -> Union[int, str]:
    """Zobrazí menu s možnostmi a vrátí vybranou hodnotu.

    Args:
        header (list): řádky záhlaví
        options (list): položka může být
            - string (zobrazí se s pořadovým číslem)
            - (str, hodnota) volba vrací hodnotu
            - (str, None) oddělovač nebo popis, podporuje "-\\n0" = čára přes celé menu
        prompt (str): výzva
        clear (bool): smazat obrazovku před vykreslením
    Returns:
        int|str: vybraná hodnota, int pokud jde převést
    """
    options_converted = []
    maxOptLen = 0
    for i, opt in enumerate(options):
        if isinstance(opt, str):
            options_converted.append((opt, str(i + 1)))
        elif isinstance(opt, (tuple, list)) and len(opt) == 2:
            options_converted.append((str(opt[0]), None if opt[1] is None else str(opt[1])))
        else:
            raise ValueError("options must be strings or (str, value) pairs")
        choice = options_converted[-1][1]
        if choice is not None and len(choice) > maxOptLen:
            maxOptLen = len(choice)

    if not isinstance(header, list):
        raise ValueError("header must be a list of lines")

    while True:
        if clear:
            cls()
        if header:
            _printLine("=\n0")
            for line in header:
                _printLine(str(line))
            _printLine("=\n0")

        for option, choice in options_converted:
            if choice is None:
                _printLine(option)
                continue
            spc = " " * (maxOptLen - len(choice))
            print(f" {spc}{choice}    {option}")

        choice = str(input(prompt)).strip()
        for _, val in options_converted:
            if val is not None and val == choice:
                try:
                    return int(val)
                except ValueError:
                    return val
        warn("Invalid option, try again.")
        if clear:
            anyKey()


# -----------------------------------------------------------------
# dotazy, při ValidationError se ptáme znovu
# -----------------------------------------------------------------

def _ask(label: str, check, secret: bool = False) -> Any:
    while True:
        raw = getpass.getpass(f"  {label}: ") if secret else input(f"  {label}: ")
        try:
            return check(raw)
        except ValidationError as e:
            print(f"    -> {e}")


def prompt_new_username(conf: FtpConfig, identity) -> str:
    def check(raw):
        name = parser.validate_username(raw, conf)
        if identity.user_exists(name):
            raise ValidationError(f"User '{name}' already exists, choose another name.")
        return name
    return _ask("Username", check)


def prompt_existing_username(identity) -> str:
    def check(raw):
        name = raw.strip()
        if not name or not identity.user_exists(name):
            raise ValidationError(f"User '{name}' does not exist.")
        return name
    return _ask("Username", check)


def prompt_password(label: str = "Password") -> str:
    def check(raw):
        pw = parser.validate_password(raw)
        again = getpass.getpass("  Repeat password: ")
        if again != pw:
            raise ValidationError("Passwords do not match.")
        return pw
    return _ask(f"{label} (min {glb.PASSWORD_MIN} chars)", check, secret=True)


def prompt_group(conf: FtpConfig) -> str:
    print("  Available groups:")
    for i, g in enumerate(conf.groups):
        print(f"    {i + 1}) {g}")

    def check(raw):
        idx = parser.validate_int(raw, 1, len(conf.groups))
        return conf.groups[idx - 1]
    return _ask(f"Select group (1-{len(conf.groups)})", check)


def prompt_int(label: str, min_v: int, max_v: int) -> int:
    return _ask(f"{label} ({min_v}-{max_v})", lambda raw: parser.validate_int(raw, min_v, max_v))


def prompt_confirm(label: str = "Confirm?") -> bool:
    resp = input(f"  {label} [y/N]: ").strip().lower()
    return resp in ("y", "yes", "s")
