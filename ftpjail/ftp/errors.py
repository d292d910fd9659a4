class FtpJailError(Exception):
    """Base error for FTP jail management."""
    pass


class FtpConfigError(FtpJailError):
    """Invalid or unreadable configuration."""
    pass


class ValidationError(FtpJailError):
    """Bad operator input (username, group, password, count)."""
    pass


class AlreadyExistsError(FtpJailError):
    pass


class NotFoundError(FtpJailError):
    pass


class PartialStateError(FtpJailError):
    """Namespace tree does not match the expected layout.

    `issues` holds one human readable line per mismatch.
    """

    def __init__(self, username: str, issues: list[str]):
        self.username = username
        self.issues = list(issues)
        super().__init__(f"Tree of user '{username}' is inconsistent: " + "; ".join(self.issues))


class ExternalToolFailure(FtpJailError):
    """External command or OS call failed (mount, useradd, systemctl, ...)."""
    pass


class PrivilegeError(FtpJailError):
    pass
