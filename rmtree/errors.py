"""
Error types raised while planning or carrying out a removal.
"""


class RmtreeError(Exception):
    """Base class for rmtree errors"""


class PackageUnavailable(RmtreeError):
    """A package name cannot be resolved against the package index"""

    def __init__(self, name: str, reason: str = ""):
        self.name = name
        self.reason = reason
        message = f"No available formula with the name '{name}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class PackageNotInstalled(PackageUnavailable):
    """The package exists but is not currently installed"""

    def __init__(self, name: str):
        self.name = name
        self.reason = "not installed"
        RmtreeError.__init__(self, f"{name} is not currently installed")


class PackageIndexError(RmtreeError):
    """The installed package graph could not be loaded"""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Could not list installed formulae: {reason}")


class BlockedByExternalUsers(RmtreeError):
    """Other installed packages still depend on the package"""

    def __init__(self, name: str, users: set[str]):
        self.name = name
        self.users = set(users)
        super().__init__(
            f"{name} can't be removed because other formula depend on it: "
            f"{', '.join(sorted(self.users))}"
        )


class RemovalFailed(RmtreeError):
    """The package could not be physically uninstalled"""

    def __init__(self, name: str, reason: str = ""):
        self.name = name
        self.reason = reason
        message = f"Failed to remove {name}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class UserDeclined(RmtreeError):
    """The user answered no at the confirmation prompt"""

    def __init__(self, message: str = "User quit"):
        super().__init__(message)
