"""Migration exceptions."""


class MigrationError(Exception):
    """Base exception for migration failures."""

    pass


class RootWorkingFolderError(MigrationError):
    """The Vault root folder has no working folder assignment."""

    pass


class BranchCheckoutError(MigrationError):
    """git did not switch to the requested branch."""

    def __init__(self, branch: str, attempts: int):
        """Initialize branch checkout error.

        Args:
            branch: Branch that could not be checked out
            attempts: Checkout attempts made
        """
        super().__init__(f'Cannot switch to branch {branch} after {attempts} attempts')
        self.branch = branch
        self.attempts = attempts


class ResumePointError(MigrationError):
    """No restart point was found and starting over was not approved."""

    def __init__(self, branch: str, depth: int):
        """Initialize resume point error.

        Args:
            branch: Branch being resumed
            depth: Commits searched
        """
        super().__init__(
            f'Restart commit message not located in branch {branch} '
            f'within {depth} commits of HEAD'
        )
        self.branch = branch
        self.depth = depth


class ReplayError(MigrationError):
    """A Vault transaction could not be applied to the working folder."""

    def __init__(self, message: str, revision: int = 0, transaction_id: int = 0):
        """Initialize replay error.

        Args:
            message: Error message
            revision: Vault version being replayed
            transaction_id: Vault transaction being replayed
        """
        super().__init__(message)
        self.revision = revision
        self.transaction_id = transaction_id
