"""Git operations on the migration target repository."""

import re
from datetime import datetime
from typing import List, Optional

from loguru import logger

from .runner import CommandError, CommandResult, CommandRunner

# First line printed by git commit: "[master 1a2b3c4] message" or
# "[master (root-commit) 1a2b3c4] message"
_COMMIT_LINE = re.compile(r'^\[(?P<branch>.+?)(?: \(root-commit\))? (?P<sha>[0-9a-f]{4,40})\]')


class GitRepository:
    """Thin wrapper around the git command line for one work tree."""

    def __init__(self, runner: CommandRunner, user_name: str, user_email: str):
        """Initialize git repository wrapper.

        Args:
            runner: Command runner bound to the git executable and work tree
            user_name: Committer name
            user_email: Committer email
        """
        self.runner = runner
        self.user_name = user_name
        self.user_email = user_email
        self.logger = logger.bind(component='GitRepository')

    def run(self, *args: str, stdin: str = '') -> CommandResult:
        """Run a git sub-command with the committer identity configured."""
        identity = [
            '-c',
            f'user.name={self.user_name}',
            '-c',
            f'user.email={self.user_email}',
        ]
        return self.runner.run([*identity, *args], stdin=stdin)

    def version(self) -> str:
        return self.run('version').first_line

    def current_branch(self) -> Optional[str]:
        """Name of the checked-out branch, or None on a detached HEAD.

        A branch without commits yet (fresh repository) is reported too.
        """
        try:
            return self.run('symbolic-ref', '--short', '-q', 'HEAD').first_line.strip() or None
        except CommandError:
            return None

    def branch_exists(self, branch: str) -> bool:
        try:
            self.run('rev-parse', '--verify', '--quiet', f'refs/heads/{branch}')
            return True
        except CommandError:
            return False

    def checkout(self, branch: str) -> int:
        return self.run('checkout', '--quiet', '--force', branch).elapsed_ms

    def start_orphan_branch(self, branch: str) -> int:
        """Point HEAD at a branch that has no commits yet.

        The next commit starts a new history. The index is left as it is, so
        the caller must restage the work tree before committing.
        """
        return self.run('symbolic-ref', 'HEAD', f'refs/heads/{branch}').elapsed_ms

    def add_all(self) -> int:
        return self.run('add', '--force', '--all', '.').elapsed_ms

    def status(self) -> List[str]:
        """Porcelain status lines; empty when nothing is staged or changed."""
        return [line for line in self.run('status', '--porcelain').lines if line]

    def commit(
        self,
        author_name: str,
        author_email: str,
        timestamp: datetime,
        message: str,
    ) -> CommandResult:
        """Commit everything staged, reading the message from stdin.

        Args:
            author_name: Author name
            author_email: Author email
            timestamp: Author date
            message: Full commit message

        Returns:
            Command result; its first line names the branch and new commit
        """
        return self.run(
            'commit',
            '--allow-empty',
            '--allow-empty-message',
            '--all',
            '--cleanup=verbatim',
            f'--date={timestamp.strftime("%Y-%m-%dT%H:%M:%S")}',
            f'--author={author_name} <{author_email}>',
            '-F',
            '-',
            stdin=message,
        )

    def commit_message(self, branch: str, offset: int) -> str:
        """Full message of the commit ``offset`` steps behind ``branch``."""
        result = self.run('show', '-s', '--format=%B', f'{branch}~{offset}')
        return '\n'.join(result.lines)

    def tag(self, name: str, commit: str, message: str) -> int:
        return self.run('tag', '-a', '-m', message, name, commit).elapsed_ms

    def gc(self) -> int:
        return self.run('gc', '--auto').elapsed_ms

    def update_server_info(self) -> int:
        """Refresh auxiliary info files so dumb transports can read the repo."""
        return self.run('update-server-info').elapsed_ms

    @staticmethod
    def parse_commit_line(line: str) -> Optional[tuple]:
        """Split the first ``git commit`` output line.

        Returns:
            ``(branch, sha)`` or None if the line does not look like a commit
        """
        match = _COMMIT_LINE.match(line)
        if not match:
            return None
        return match.group('branch'), match.group('sha')
