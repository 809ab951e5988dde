# tests/test_git_boundary.py
# Unit tests for git invocation, config loading and the planning-doc commit in plan-docs.py.

import importlib.util
import json
import subprocess
from unittest.mock import MagicMock, patch

spec = importlib.util.spec_from_file_location(
    "plan_docs", "scripts/plan-docs.py"
)
mod = importlib.util.module_from_spec(spec)
spec.loader.exec_module(mod)

run_git = mod.run_git
is_commit = mod.is_commit
commit_planning_docs = mod.commit_planning_docs
load_config = mod.load_config
resolve_preferences = mod.resolve_preferences
PREFERENCE_DEFAULTS = mod.PREFERENCE_DEFAULTS


def _make_run_result(returncode=0, stdout="", stderr=""):
    result = MagicMock()
    result.returncode = returncode
    result.stdout = stdout
    result.stderr = stderr
    return result


def _write_config(tmp_path, data):
    planning = tmp_path / ".planning"
    planning.mkdir(exist_ok=True)
    (planning / "config.json").write_text(json.dumps(data))


# --- run_git() tests ---


def test_run_git_passes_cwd_and_timeout(tmp_path):
    """git runs in the project root with the configured timeout."""
    with patch("subprocess.run", return_value=_make_run_result(stdout=" out \n")) as mock_run:
        result = run_git(tmp_path, ["status"], timeout=7)
    assert result.ok is True
    assert result.stdout == "out"
    args, kwargs = mock_run.call_args
    assert args[0] == ["git", "status"]
    assert kwargs["cwd"] == str(tmp_path)
    assert kwargs["timeout"] == 7


def test_run_git_timeout_is_nonzero_result(tmp_path):
    """A hung git call becomes exit code 124 instead of an exception."""
    with patch("subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="git", timeout=1)):
        result = run_git(tmp_path, ["status"], timeout=1)
    assert result.exit_code == 124
    assert result.ok is False


def test_run_git_missing_binary(tmp_path):
    """A missing git binary becomes exit code 127."""
    with patch("subprocess.run", side_effect=FileNotFoundError("git")):
        result = run_git(tmp_path, ["status"])
    assert result.exit_code == 127


def test_is_commit_rejects_other_objects(tmp_path):
    """Only the 'commit' object type counts."""
    with patch("subprocess.run", return_value=_make_run_result(stdout="tree\n")):
        assert is_commit(tmp_path, "abc1234") is False
    with patch("subprocess.run", return_value=_make_run_result(stdout="commit\n")):
        assert is_commit(tmp_path, "abc1234") is True


# --- config tests ---


def test_load_config_defaults_without_file(tmp_path):
    """A project without config.json gets every default."""
    config = load_config(tmp_path)
    assert config.preferences == PREFERENCE_DEFAULTS
    assert config.planning_dir == tmp_path.resolve() / ".planning"
    assert config.commit_docs is True


def test_load_config_malformed_falls_back(tmp_path):
    """Malformed JSON is ignored in favor of defaults."""
    (tmp_path / ".planning").mkdir()
    (tmp_path / ".planning" / "config.json").write_text("{not: [valid")
    assert load_config(tmp_path).preferences == PREFERENCE_DEFAULTS


def test_load_config_keeps_explicit_false(tmp_path):
    """An explicit false is not replaced by a true default."""
    _write_config(tmp_path, {"research": False, "commit_docs": False})
    config = load_config(tmp_path)
    assert config.preferences["research"] is False
    assert config.commit_docs is False


def test_resolve_preferences_reads_legacy_sections():
    """Nested planning/git/workflow sections are honored when top-level keys are absent."""
    prefs = resolve_preferences({
        "planning": {"commit_docs": False},
        "git": {"branching_strategy": "phase"},
        "workflow": {"plan_check": False},
        "parallelization": {"enabled": False},
    })
    assert prefs["commit_docs"] is False
    assert prefs["branching_strategy"] == "phase"
    assert prefs["plan_checker"] is False
    assert prefs["parallelization"] is False


def test_resolve_preferences_top_level_wins():
    """A top-level key overrides its legacy nested location."""
    prefs = resolve_preferences({"commit_docs": True, "planning": {"commit_docs": False}})
    assert prefs["commit_docs"] is True


def test_git_timeout_from_config(tmp_path):
    """git_timeout_seconds is read from config."""
    _write_config(tmp_path, {"git_timeout_seconds": 5})
    assert load_config(tmp_path).git_timeout == 5


# --- commit_planning_docs() tests ---


def test_commit_skipped_when_commit_docs_false(tmp_path):
    """commit_docs: false skips without touching git."""
    _write_config(tmp_path, {"commit_docs": False})
    with patch("subprocess.run") as mock_run:
        outcome = commit_planning_docs(load_config(tmp_path), "docs: update")
    assert outcome.committed is False
    assert outcome.reason == "skipped_commit_docs_false"
    mock_run.assert_not_called()


def test_commit_skipped_when_planning_ignored(tmp_path):
    """A git-ignored planning directory is skipped."""
    with patch("subprocess.run", return_value=_make_run_result(returncode=0)):
        outcome = commit_planning_docs(load_config(tmp_path), "docs: update")
    assert outcome.reason == "skipped_gitignored"


def test_commit_nothing_staged(tmp_path):
    """No staged changes is a skip, not a failure."""
    def side_effect(cmd, **kwargs):
        if cmd[1] == "check-ignore":
            return _make_run_result(returncode=1)
        return _make_run_result(returncode=0)

    with patch("subprocess.run", side_effect=side_effect):
        outcome = commit_planning_docs(load_config(tmp_path), "docs: update")
    assert outcome.committed is False
    assert outcome.reason == "nothing_to_commit"


def test_commit_success_returns_hash(tmp_path):
    """A successful commit reports the short hash."""
    calls = []

    def side_effect(cmd, **kwargs):
        calls.append(cmd)
        if cmd[1] in ("check-ignore", "diff"):
            return _make_run_result(returncode=1)
        if cmd[1] == "rev-parse":
            return _make_run_result(stdout="abc1234\n")
        return _make_run_result(returncode=0)

    with patch("subprocess.run", side_effect=side_effect):
        outcome = commit_planning_docs(load_config(tmp_path), "docs: update", files=[".planning/STATE.md"])
    assert outcome.committed is True
    assert outcome.hash == "abc1234"
    assert ["git", "add", ".planning/STATE.md"] in calls
    assert ["git", "commit", "-m", "docs: update"] in calls
