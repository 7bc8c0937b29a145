"""Tests for the command-line interface."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from repomap import cli
from repomap.models import Entry, RepoProfile

runner = CliRunner()

LISTINGS = {
    "": [
        Entry(kind="dir", path="src", name="src"),
        Entry(kind="file", path="README.md", name="README.md", byte_size=12),
    ],
    "src": [Entry(kind="file", path="src/auth.py", name="auth.py", byte_size=30)],
}
FILES = {"README.md": "# Demo\n", "src/auth.py": "def login(): ...\n"}


@pytest.fixture
def wired(monkeypatch, tmp_path, fake_source, scripted_llm):
    """Point the CLI at in-memory fakes; returns a setter for the LLM script."""
    monkeypatch.chdir(tmp_path)
    source = fake_source(LISTINGS, FILES, repos=[RepoProfile(name="demo", language="Python")])
    monkeypatch.setattr(cli, "_build_github_client", lambda: source)
    state = {"llm": scripted_llm("ok")}
    monkeypatch.setattr(cli, "_build_llm_client", lambda cfg: state["llm"])

    def use_llm(*script):
        state["llm"] = scripted_llm(*script)
        return state["llm"]

    use_llm.source = source
    return use_llm


class TestTree:
    def test_outline(self, wired):
        result = runner.invoke(cli.app, ["tree", "octo/demo", "--outline"])
        assert result.exit_code == 0, result.output
        assert "- demo (FOLDER)\n  - src (FOLDER)\n    - auth.py (FILE)\n  - README.md (FILE)" in result.output
        assert "2 files, 1 folders" in result.output

    def test_depth_one_does_not_expand(self, wired):
        result = runner.invoke(cli.app, ["tree", "octo/demo", "--depth", "1"])
        assert result.exit_code == 0, result.output
        assert ("list", "src", None) not in wired.source.calls

    def test_bad_repo_slug(self, wired):
        result = runner.invoke(cli.app, ["tree", "not-a-repo"])
        assert result.exit_code == 1
        assert "expected OWNER/REPO" in result.output

    def test_provider_error(self, wired):
        wired.source.listings.pop("")
        result = runner.invoke(cli.app, ["tree", "octo/demo"])
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "404" in result.output
        # the fake copies its listings, so later tests still see the root
        assert "" in LISTINGS


class TestLLMCommands:
    def test_summarize(self, wired):
        llm = wired("Handles login.")
        result = runner.invoke(cli.app, ["summarize", "octo/demo", "src/auth.py", "-b", "dev"])
        assert result.exit_code == 0, result.output
        assert "Handles login." in result.output
        assert "branch: dev." in llm.prompts[0]

    def test_summarize_folder_path(self, wired):
        result = runner.invoke(cli.app, ["summarize", "octo/demo", "src"])
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "is a folder" in result.output

    def test_analyze_table(self, wired):
        wired('{"summary": "Auth helpers.", "items": [{"name": "login", "type": "FUNCTION", "description": "Logs in"}]}')
        result = runner.invoke(cli.app, ["analyze", "octo/demo", "src/auth.py"])
        assert result.exit_code == 0, result.output
        assert "Auth helpers." in result.output
        assert "login" in result.output

    def test_analyze_unavailable(self, wired):
        wired((429, "slow down"))
        result = runner.invoke(cli.app, ["analyze", "octo/demo", "README.md"])
        assert result.exit_code == 1
        assert "Analysis unavailable." in result.output

    def test_ask_about_folder(self, wired):
        llm = wired("It holds the auth code.")
        result = runner.invoke(cli.app, ["ask", "octo/demo", "What is here?", "--path", "src"])
        assert result.exit_code == 0, result.output
        assert "It holds the auth code." in result.output
        assert "Folder Structure Map (Recursive):\n- src (FOLDER)\n  - auth.py (FILE)" in llm.prompts[0]

    def test_ask_unknown_path(self, wired):
        result = runner.invoke(cli.app, ["ask", "octo/demo", "?", "--path", "missing.py"])
        assert result.exit_code == 1
        assert "path not found" in result.output

    def test_find(self, wired):
        wired("README.md")
        result = runner.invoke(cli.app, ["find", "octo/demo", "project overview"])
        assert result.exit_code == 0, result.output
        assert "README.md" in result.output

    def test_find_nothing(self, wired):
        wired("null")
        result = runner.invoke(cli.app, ["find", "octo/demo", "payments"])
        assert result.exit_code == 1
        assert "No relevant file found." in result.output

    def test_profile_language(self, wired):
        llm = wired("Python everywhere.")
        result = runner.invoke(cli.app, ["profile", "octo", "Why?", "--language", "Python"])
        assert result.exit_code == 0, result.output
        assert "Language Context (Python):" in llm.prompts[0]

    def test_profile_rejects_both_filters(self, wired):
        result = runner.invoke(cli.app, ["profile", "octo", "?", "-l", "Go", "-r", "demo"])
        assert result.exit_code == 1


def test_config_command(wired, tmp_path):
    (tmp_path / "repomap.toml").write_text("outline_max_items = 7\n")
    result = runner.invoke(cli.app, ["config"])
    assert result.exit_code == 0, result.output
    assert "outline_max_items = 7" in result.output
