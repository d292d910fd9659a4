#!/usr/bin/env python3
"""FTP server manager (vsftpd).

Installs and configures vsftpd and manages FTP users whose chroot contains
the shared folder, their group folder and a private folder.

Run as root:  sudo ./ftpmng.py [command]
"""
import sys
import argparse
import logging

import ftpjail.helper as hlp
from ftpjail import glb
from ftpjail import console as con
from ftpjail import monitor as mon
from ftpjail.ftp import parser
from ftpjail.ftp.errors import FtpJailError, PrivilegeError, ValidationError
from ftpjail.ftp.vsftpd import VsftpdParams, VsftpdService, detect_server_ip
from ftpjail.manager import FtpManager
from ftpjail.outcome import Outcome

log = hlp.getLogger("ftpManager")


def install(conf, mng: FtpManager) -> Outcome:
    svc = VsftpdService(conf)
    try:
        installed = svc.ensure_installed()
    except FtpJailError as e:
        log.exception(e)
        return Outcome.failure(f"vsftpd cannot be installed: {e}")
    con.show(Outcome.ok("vsftpd installed" if installed else "vsftpd already installed"))
    return mng.bootstrap()


def configure(conf) -> Outcome:
    svc = VsftpdService(conf)
    params = VsftpdParams.from_config(conf, pasv_address=conf.pasv_address or detect_server_ip())
    try:
        backup = svc.apply_configuration(params)
    except FtpJailError as e:
        log.error(f"Configuration failed: {e}")
        return Outcome.failure(str(e))
    if backup:
        con.info(f"Backup created: {backup}")
    return svc.restart_service()


def list_users(mng: FtpManager) -> None:
    print("")
    print(f"  {'USER':<20} {'FTP GROUP':<15} {'FTP HOME':<30}")
    con.separator()
    users = mng.list_users()
    for u in users:
        flag = "" if u.has_tree and u.projected else "  (incomplete, run repair)"
        print(f"  {u.username:<20} {u.group or '-':<15} {u.root:<30}{flag}")
    if not users:
        print("  (no FTP users)")


# -----------------------------------------------------------------
# interaktivní menu
# -----------------------------------------------------------------

def create_one(conf, mng: FtpManager) -> None:
    con.separator()
    con.info("-- New FTP user --")
    username = con.prompt_new_username(conf, mng.identity)
    password = con.prompt_password()
    group = con.prompt_group(conf)
    con.show(mng.create_user(username, group, password))


def create_many(conf, mng: FtpManager) -> None:
    n = con.prompt_int("Number of users to create", 1, glb.BATCH_MAX)
    records = []
    for i in range(1, n + 1):
        print("")
        con.info(f"-- User {i} of {n} --")
        username = con.prompt_new_username(conf, mng.identity)
        password = con.prompt_password()
        group = con.prompt_group(conf)
        records.append((username, group, password))
    print("")
    for out in mng.create_users(records):
        con.show(out)


def change_group(conf, mng: FtpManager) -> None:
    con.separator()
    con.info("-- Change user group --")
    username = con.prompt_existing_username(mng.identity)
    print(f"  Current group: {mng.identity.current_group_of(username) or 'none'}")
    group = con.prompt_group(conf)
    con.show(mng.change_group(username, group))


def delete_one(mng: FtpManager) -> None:
    con.separator()
    con.info("-- Delete FTP user --")
    username = con.prompt_existing_username(mng.identity)
    if not con.prompt_confirm(f"Delete user '{username}' and its folders?"):
        con.warn("Cancelled.")
        return
    con.show(mng.delete_user(username))


def repair_one(mng: FtpManager) -> None:
    con.separator()
    username = con.prompt_existing_username(mng.identity)
    con.show(mng.repair_user(username))


def user_menu(conf, mng: FtpManager) -> None:
    while True:
        opt = con.menu(
            ["FTP USER MANAGEMENT\n0c"],
            [
                ["Create N users", 1],
                ["Create 1 user", 2],
                ["Change user group", 3],
                ["Delete user", 4],
                ["List FTP users", 5],
                ["Repair user tree", 6],
                ["-\n0", None],
                ["Back", 7],
            ],
            clear=False,
        )
        if opt == 1:
            create_many(conf, mng)
        elif opt == 2:
            create_one(conf, mng)
        elif opt == 3:
            change_group(conf, mng)
        elif opt == 4:
            delete_one(mng)
        elif opt == 5:
            list_users(mng)
        elif opt == 6:
            repair_one(mng)
        elif opt == 7:
            return


def monitor_menu(conf, mng: FtpManager) -> None:
    while True:
        opt = con.menu(
            ["vsftpd MONITORING\n0c"],
            [
                ["Service status", 1],
                ["Active FTP connections", 2],
                ["Last log lines", 3],
                ["Users and groups", 4],
                ["Active bind links", 5],
                ["-\n0", None],
                ["Back", 6],
            ],
            clear=False,
        )
        print("")
        if opt == 1:
            print(mon.service_status())
        elif opt == 2:
            print(mon.active_connections())
        elif opt == 3:
            print(mon.log_tail(conf))
        elif opt == 4:
            print(mon.group_members(conf, mng.identity))
        elif opt == 5:
            print(mon.active_links(conf, mng.fs))
        elif opt == 6:
            return


def main_menu(conf, mng: FtpManager) -> None:
    while True:
        opt = con.menu(
            ["FTP MAIN MENU\n0c", f"Version: {glb.VERSION}\n0c"],
            [
                ["Install / update vsftpd", 1],
                ["(Re)configure vsftpd.conf", 2],
                ["User management", 3],
                ["Monitoring", 4],
                ["-\n0", None],
                ["Exit", 5],
            ],
            clear=False,
        )
        if opt == 1:
            con.show(install(conf, mng))
        elif opt == 2:
            con.show(configure(conf))
        elif opt == 3:
            user_menu(conf, mng)
        elif opt == 4:
            monitor_menu(conf, mng)
        elif opt == 5:
            print("\n  Bye!")
            return


# -----------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="FTP server manager (vsftpd)")
    ap.add_argument("-v", "--verbose", action="store_true")
    ap.add_argument("--config", default=glb.CONFIG_FILE, help="INI config file")

    sub = ap.add_subparsers(dest="cmd")

    sub.add_parser("install", help="Install vsftpd, create groups and FTP root")
    sub.add_parser("configure", help="Write vsftpd.conf and restart the service")

    ap_cr = sub.add_parser("create", help="Create FTP user (password is prompted)")
    ap_cr.add_argument("--user", required=True)
    ap_cr.add_argument("--group", required=True)

    ap_cg = sub.add_parser("change-group", help="Move user to another group")
    ap_cg.add_argument("--user", required=True)
    ap_cg.add_argument("--group", required=True)

    ap_del = sub.add_parser("delete", help="Delete FTP user")
    ap_del.add_argument("--user", required=True)
    ap_del.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    ap_rep = sub.add_parser("repair", help="Check and repair user tree")
    ap_rep.add_argument("--user", required=True)

    sub.add_parser("list", help="List FTP users")
    ap_menu = sub.add_parser("menu", help="Interactive menu (default)")
    ap_menu.add_argument("--skip-setup", action="store_true", help="Do not install/configure vsftpd on start")
    return ap


def run_command(args, conf, mng: FtpManager) -> int:
    out = None
    if args.cmd == "install":
        out = install(conf, mng)
        if out.success:
            con.show(out)
            out = configure(conf)
    elif args.cmd == "configure":
        out = configure(conf)
    elif args.cmd == "create":
        password = con.prompt_password()
        out = mng.create_user(args.user, args.group, password)
    elif args.cmd == "change-group":
        out = mng.change_group(args.user, args.group)
    elif args.cmd == "delete":
        if not args.yes and not con.prompt_confirm(f"Delete user '{args.user}' and its folders?"):
            con.warn("Cancelled.")
            return 0
        out = mng.delete_user(args.user)
    elif args.cmd == "repair":
        out = mng.repair_user(args.user)
    elif args.cmd == "list":
        list_users(mng)
        return 0
    else:
        con.banner()
        if not getattr(args, "skip_setup", False):
            con.info("Initializing FTP environment...")
            for step in (install, lambda c, m: configure(c)):
                res = step(conf, mng)
                con.show(res)
                if not res.success:
                    return 1
        main_menu(conf, mng)
        return 0

    con.show(out)
    return 0 if out.success else 1


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    hlp.initLogging(toConsole=args.verbose, log_level=logging.DEBUG if args.verbose else logging.INFO)
    log.info("*" * 20 + " FTP Manager Started " + "*" * 20)

    try:
        conf = parser.load_config(args.config)
        mng = FtpManager.for_host(conf)
    except PrivilegeError as e:
        print(f"{con.RED}[ERR]  {e}{con.RESET}", file=sys.stderr)
        return 1
    except FtpJailError as e:
        log.error(f"Startup failed: {e}")
        print(f"{con.RED}[ERR]  {e}{con.RESET}", file=sys.stderr)
        return 1

    try:
        return run_command(args, conf, mng)
    except ValidationError as e:
        con.show(Outcome.failure(str(e)))
        return 2
    except KeyboardInterrupt:
        print("")
        return 130
    finally:
        log.info("*" * 20 + " FTP Manager Finished " + "*" * 20)


if __name__ == "__main__":
    sys.exit(main())
