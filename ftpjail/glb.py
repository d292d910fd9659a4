VERSION = "1.0.0"

CONFIG_FILE = "/etc/ftpmng/ftpmng.conf"

FTP_ROOT = "/srv/ftp"
HOME_ROOT = "/home"
TREE_DIR = "ftp"
SHARED_NAME = "general"
GROUPS = ("reprobados", "recursadores")

VSFTPD_CONF = "/etc/vsftpd.conf"
VSFTPD_USER_CONF_DIR = "/etc/vsftpd/user_conf"
VSFTPD_LOG = "/var/log/vsftpd.log"
METADATA_DIR = "/etc/ftpmng/users"
FSTAB = "/etc/fstab"

PASV_MIN = 40000
PASV_MAX = 40100

# identita anonymního uživatele ve vsftpd (ftp_username)
ANON_IDENTITY = "ftp"

USERNAME_MAX = 32
PASSWORD_MIN = 4
BATCH_MAX = 100
