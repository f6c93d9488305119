"""Tests for teamvault.cli — command parsing and execution."""

import uuid

import pytest

import teamvault.cli as cli_mod
from teamvault.engine.config import load_config
from teamvault.vault import Vault


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "teamvault.yaml"
    path.write_text(
        "database:\n"
        f"  url: sqlite:///{tmp_path / 'vault.db'}\n"
        "storage:\n"
        f"  root: {tmp_path / 'storage'}\n"
        "logging:\n"
        f"  directory: {tmp_path / 'logs'}\n"
        "security:\n"
        "  bcrypt_rounds: 4\n"
    )
    return str(path)


def run(config_file, *argv):
    return cli_mod.main(["--config", config_file, *argv])


@pytest.fixture
def seeded(config_file):
    """A vault over the same files the CLI uses, with alice and a few files."""
    v = Vault(load_config(config_file), engine_name=f"cli-{uuid.uuid4().hex}", async_logging=False)
    v.startup()
    v.accounts.signup("alice", "secret-pw", "secret-pw")
    root = v.folders.get_root_items("alice")[0].id
    sub = v.folders.create_folder("alice", "invoices", parent_id=root)
    v.files.upload_file("alice", "invoice-01.pdf", b"12345", folder_id=sub.id)
    old = v.files.upload_file("alice", "old.txt", b"x", folder_id=root)
    v.files.move_file_to_trash(old.id, "alice")
    yield v
    v.shutdown()


class TestCLIParsing:

    def test_no_command_prints_help(self, capsys):
        assert cli_mod.main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()

    def test_module_has_expected_commands(self):
        for name in ("cmd_init", "cmd_create_user", "cmd_tree", "cmd_search", "cmd_purge_trash"):
            assert hasattr(cli_mod, name)

    def test_unknown_command(self):
        with pytest.raises(SystemExit):
            cli_mod.main(["explode"])

    def test_bad_config(self, tmp_path, capsys):
        path = tmp_path / "teamvault.yaml"
        path.write_text("environment: nowhere\n")
        assert cli_mod.main(["--config", str(path), "init"]) == 1
        assert "[ERROR]" in capsys.readouterr().out


class TestCommands:

    def test_init(self, config_file, tmp_path, capsys):
        assert run(config_file, "init") == 0
        out = capsys.readouterr().out
        assert "[OK] Database ready" in out
        assert (tmp_path / "vault.db").exists()
        assert (tmp_path / "storage" / "originals").is_dir()
        assert (tmp_path / "storage" / "versions").is_dir()

    def test_create_user(self, config_file, capsys):
        assert run(config_file, "create-user", "root", "--password", "topsecret") == 0
        assert run(config_file, "create-user", "dana", "--password", "topsecret") == 0
        out = capsys.readouterr().out
        assert "[OK] Created user 'root' (ADMIN)" in out
        assert "[OK] Created user 'dana' (USER)" in out

    def test_create_user_prompts(self, config_file, capsys, monkeypatch):
        answers = iter(["first-pw", "typo-pw", "second-pw", "second-pw"])
        monkeypatch.setattr(cli_mod.getpass, "getpass", lambda prompt="": next(answers))
        assert run(config_file, "create-user", "erin") == 0
        out = capsys.readouterr().out
        assert "do not match" in out
        assert "Created user 'erin'" in out

    def test_create_duplicate_user(self, config_file, capsys):
        run(config_file, "create-user", "root", "--password", "topsecret")
        assert run(config_file, "create-user", "root", "--password", "topsecret") == 1
        assert "[ERROR] Username 'root' is already taken" in capsys.readouterr().out

    def test_tree(self, config_file, seeded, capsys):
        assert run(config_file, "tree", "alice") == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines[0].startswith("alice/")
        assert lines[1].startswith("  invoices/")

    def test_tree_unknown_user(self, config_file, seeded, capsys):
        assert run(config_file, "tree", "ghost") == 1
        assert "[ERROR] User 'ghost' not found" in capsys.readouterr().out

    def test_search(self, config_file, seeded, capsys):
        assert run(config_file, "search", "alice", "INVOICE") == 0
        out = capsys.readouterr().out
        assert "/alice/invoices/invoice-01.pdf" in out
        assert "5 bytes" in out
        assert "1 match(es)" in out

    def test_purge_trash(self, config_file, seeded, capsys):
        assert run(config_file, "purge-trash") == 0
        assert "[OK] Purged 0 file(s) trashed more than 30 day(s) ago" in capsys.readouterr().out
        assert len(seeded.trash.list_trash("alice")) == 1
