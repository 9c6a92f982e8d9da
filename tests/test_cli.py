"""Tests for the click CLI."""

from unittest.mock import AsyncMock

import pytest
from click.testing import CliRunner

from conductor import main
from conductor.core.pipeline import HandlerResult


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch):
    monkeypatch.setattr(main, "setup_logging", lambda **kwargs: None)


@pytest.fixture
def config_file(tmp_path):
    skills_dir = tmp_path / "skills"
    skill_dir = skills_dir / "hello"
    skill_dir.mkdir(parents=True)
    (skill_dir / "SKILL.md").write_text("---\nname: hello\ndescription: Say hi\n---\nSay hi.\n")
    broken = skills_dir / "broken"
    broken.mkdir()
    (broken / "SKILL.md").write_text("no frontmatter")

    path = tmp_path / "config.yaml"
    path.write_text(f"data_dir: {tmp_path / 'data'}\nskills:\n  directories: [{skills_dir}]\n")
    return path


class TestSkillsCommand:
    def test_lists_skills_and_failures(self, config_file):
        result = CliRunner().invoke(main.cli, ["skills", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "hello [enabled; sms, whatsapp] - Say hi" in result.output
        assert "FAILED" in result.output

    def test_channel_filter(self, config_file):
        result = CliRunner().invoke(main.cli, ["skills", "--config", str(config_file), "--channel", "email"])
        assert "hello [" not in result.output


class TestAskCommand:
    def test_prints_reply(self, config_file, monkeypatch):
        run_once = AsyncMock(return_value=HandlerResult(success=True, response="Hi there"))
        monkeypatch.setattr(main, "run_once", run_once)

        result = CliRunner().invoke(main.cli, ["ask", "hello", "--config", str(config_file), "--sender", "me"])

        assert result.exit_code == 0
        assert result.output.strip().splitlines()[-1] == "Hi there"
        request = run_once.call_args.args[1]
        assert request.sender_id == "me"
        assert request.channel == "cli"
        assert request.content == "hello"

    def test_failure_exit_code(self, config_file, monkeypatch):
        run_once = AsyncMock(return_value=HandlerResult(success=False, response="Sorry"))
        monkeypatch.setattr(main, "run_once", run_once)
        result = CliRunner().invoke(main.cli, ["ask", "hello", "--config", str(config_file)])
        assert result.exit_code == 1
        assert "Sorry" in result.output


class TestSkillMatch:
    def test_match_hints(self, config_file, tmp_path):
        skill_dir = tmp_path / "skills" / "receipts"
        skill_dir.mkdir()
        (skill_dir / "SKILL.md").write_text(
            "---\nname: receipts\ndescription: Receipts\nmetadata:\n  conductor:\n    match: [receipt]\n---\nSum it.\n"
        )
        runner = CliRunner()
        matched = runner.invoke(main.cli, ["skills", "--config", str(config_file), "--match", "my receipt"])
        assert matched.output.strip().splitlines()[-1] == "receipts"
        missed = runner.invoke(main.cli, ["skills", "--config", str(config_file), "--match", "hello"])
        assert missed.output.strip().splitlines()[-1] == "(no match)"
