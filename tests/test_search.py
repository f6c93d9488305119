"""Tests for FileService.search_files — name search over folder trees."""

import pytest

from teamvault.engine.errors import AuthorizationError


class TestSearchFiles:

    def test_personal_search(self, vault, alice, personal_root):
        root = personal_root("alice")
        sub = vault.folders.create_folder("alice", "Reports", parent_id=root)
        vault.files.upload_file("alice", "Q1-Report.pdf", b"1", folder_id=sub.id)
        vault.files.upload_file("alice", "report-draft.txt", b"22", folder_id=root)
        vault.files.upload_file("alice", "photo.jpg", b"333", folder_id=root)

        results = vault.files.search_files("alice", "REPORT")
        assert sorted(r.name for r in results) == ["Q1-Report.pdf", "report-draft.txt"]
        by_name = {r.name: r for r in results}
        assert by_name["Q1-Report.pdf"].path == "/alice/Reports"
        assert by_name["Q1-Report.pdf"].folder_id == sub.id
        assert by_name["report-draft.txt"].path == "/alice"
        assert by_name["report-draft.txt"].size == 2
        assert by_name["report-draft.txt"].owner == "alice"

    def test_skips_trashed(self, vault, alice, personal_root):
        f = vault.files.upload_file("alice", "old.txt", b"x", folder_id=personal_root("alice"))
        vault.files.move_file_to_trash(f.id, "alice")
        assert vault.files.search_files("alice", "old") == []

    def test_scopes_are_separate(self, vault, team, personal_root):
        vault.files.upload_file("alice", "mine.txt", b"m", folder_id=personal_root("alice"))
        sub = vault.folders.create_folder("alice", "specs", team_id=team.id)
        vault.files.upload_file("alice", "team.txt", b"t", folder_id=sub.id, team_id=team.id)

        assert [r.name for r in vault.files.search_files("alice", ".txt")] == ["mine.txt"]
        team_results = vault.files.search_files("alice", ".txt", team_id=team.id)
        assert [(r.name, r.path) for r in team_results] == [("team.txt", "/Research/specs")]

    def test_other_users_files_hidden(self, vault, alice, bob, personal_root):
        vault.files.upload_file("alice", "secret.txt", b"s", folder_id=personal_root("alice"))
        assert vault.files.search_files("bob", "secret") == []

    def test_team_search_requires_membership(self, vault, team, bob):
        with pytest.raises(AuthorizationError):
            vault.files.search_files("bob", "x", team_id=team.id)

    def test_empty_query_matches_all(self, vault, alice, personal_root):
        vault.files.upload_file("alice", "a.txt", b"a", folder_id=personal_root("alice"))
        vault.files.upload_file("alice", "b.txt", b"b", folder_id=personal_root("alice"))
        assert len(vault.files.search_files("alice", "")) == 2
