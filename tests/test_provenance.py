"""Tests for the provenance tag in commit messages."""

from datetime import datetime

from vault_migrate.migration.provenance import (
    PROVENANCE_MARKER,
    ProvenanceTag,
    build_commit_message,
    format_provenance_tag,
    parse_provenance_tag,
)
from vault_migrate.models.transaction import TransactionRecord


def _record(comment='Fix the build', revision=7, transaction_id=1042):
    return TransactionRecord(
        source_revision=revision,
        transaction_id=transaction_id,
        author_login='jdoe',
        comment=comment,
        timestamp=datetime(2020, 5, 1, 10, 30),
    )


class TestProvenanceTag:
    """Test formatting and parsing of provenance tags."""

    def test_format(self):
        """Test the tag line layout."""
        assert (
            format_provenance_tag('Default', '$/proj/trunk', 7, 1042)
            == '[git-vault-id] Default$/proj/trunk@7/1042'
        )

    def test_commit_message(self):
        """Test that the tag is the last line after the comment."""
        message = build_commit_message('Default', '$/proj', _record())
        assert message == 'Fix the build\n[git-vault-id] Default$/proj@7/1042\n'

    def test_commit_message_without_comment(self):
        """Test a transaction with an empty comment."""
        message = build_commit_message('Default', '$/proj', _record(comment=''))
        assert message.splitlines()[-1].startswith(PROVENANCE_MARKER)

    def test_roundtrip(self):
        """Test that a built message parses back to its source and ids."""
        message = build_commit_message(
            'Default', '$/proj/trunk', _record(comment='line one\nline two')
        )
        assert parse_provenance_tag(message) == ProvenanceTag(
            source='Default$/proj/trunk', revision=7, transaction_id=1042
        )

    def test_source_path_with_at_sign(self):
        """Test that only the last @ separates the version."""
        tag = parse_provenance_tag('[git-vault-id] Default$/a@b/c@12/99')
        assert tag.source == 'Default$/a@b/c'
        assert tag.revision == 12
        assert tag.transaction_id == 99

    def test_trailing_blank_lines(self):
        """Test that blank lines after the tag are ignored."""
        tag = parse_provenance_tag('comment\n[git-vault-id] R$/p@3/4\n\n\n')
        assert tag.revision == 3

    def test_untagged_message(self):
        """Test a commit made outside the migration."""
        assert parse_provenance_tag('Merge branch dev') is None
        assert parse_provenance_tag('') is None

    def test_tag_not_on_last_line(self):
        """Test that a tag quoted in the middle of a message is ignored."""
        message = '[git-vault-id] R$/p@3/4\nreverted by hand'
        assert parse_provenance_tag(message) is None

    def test_malformed_version(self):
        """Test a tag whose version part is not numeric."""
        assert parse_provenance_tag('[git-vault-id] R$/p@x/4') is None
        assert parse_provenance_tag('[git-vault-id] R$/p') is None
