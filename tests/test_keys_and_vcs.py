import pytest
from conftest import VALID_KEY, FakeRunner

from ec2cli.bootstrap import VcsIdentity
from ec2cli.exceptions import NotFoundError, ValidationError
from ec2cli.keys import default_key_candidates, load_public_key
from ec2cli.process import CommandResult
from ec2cli.vcs import find_vcs_identity


class TestLoadPublicKey:
    def test_candidate_order(self, tmp_path):
        candidates = default_key_candidates(project_dir=tmp_path / "proj", home=tmp_path / "home")
        assert candidates == [
            tmp_path / "proj" / ".ec2-cli" / "ssh_public_key",
            tmp_path / "home" / ".ssh" / "id_ed25519.pub",
            tmp_path / "home" / ".ssh" / "id_rsa.pub",
            tmp_path / "home" / ".ssh" / "id_ecdsa.pub",
        ]

    def test_first_existing_wins(self, tmp_path):
        rsa = tmp_path / "id_rsa.pub"
        rsa.write_text("ssh-rsa " + "B" * 60 + " bob@host\n")
        ed = tmp_path / "id_ed25519.pub"
        ed.write_text(VALID_KEY + "\n")

        assert load_public_key([tmp_path / "missing.pub", ed, rsa]) == VALID_KEY

    def test_invalid_first_key_is_an_error(self, tmp_path):
        bad = tmp_path / "id_ed25519.pub"
        bad.write_text("not a key")
        good = tmp_path / "id_rsa.pub"
        good.write_text("ssh-rsa " + "B" * 60)

        with pytest.raises(ValidationError):
            load_public_key([bad, good])

    def test_none_found(self, tmp_path):
        with pytest.raises(NotFoundError, match="Checked:"):
            load_public_key([tmp_path / "a.pub", tmp_path / "b.pub"])


class TestVcsIdentity:
    @pytest.mark.asyncio
    async def test_both_values(self):
        runner = FakeRunner(results={
            ("git", "config", "--global", "user.name"): CommandResult(0, "Alice Smith\n"),
            ("git", "config", "--global", "user.email"): CommandResult(0, "alice@example.com\n"),
        })

        assert await find_vcs_identity(runner) == VcsIdentity("Alice Smith", "alice@example.com")

    @pytest.mark.asyncio
    async def test_partial(self):
        runner = FakeRunner(results={
            ("git", "config", "--global", "user.name"): CommandResult(1),
            ("git", "config", "--global", "user.email"): CommandResult(0, "alice@example.com"),
        })

        assert await find_vcs_identity(runner) == VcsIdentity(email="alice@example.com")

    @pytest.mark.asyncio
    async def test_unset(self):
        runner = FakeRunner(results={
            ("git", "config", "--global", "user.name"): CommandResult(1),
            ("git", "config", "--global", "user.email"): CommandResult(1),
        })

        assert await find_vcs_identity(runner) is None

    @pytest.mark.asyncio
    async def test_git_not_installed(self):
        assert await find_vcs_identity(FakeRunner(missing={"git"})) is None
