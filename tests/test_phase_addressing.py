# tests/test_phase_addressing.py
# Unit tests for phase id normalization and phase directory lookup in plan-docs.py.

import importlib.util
from unittest.mock import patch

spec = importlib.util.spec_from_file_location(
    "plan_docs", "scripts/plan-docs.py"
)
mod = importlib.util.module_from_spec(spec)
spec.loader.exec_module(mod)

normalize_phase_id = mod.normalize_phase_id
display_phase_number = mod.display_phase_number
slugify = mod.slugify
phase_sort_key = mod.phase_sort_key
find_phase_dir = mod.find_phase_dir
next_decimal_phase = mod.next_decimal_phase
PhaseDir = mod.PhaseDir


def _make_phases(tmp_path, *names):
    phases_dir = tmp_path / ".planning" / "phases"
    phases_dir.mkdir(parents=True)
    for name in names:
        (phases_dir / name).mkdir()
    return phases_dir


# --- normalize_phase_id() tests ---


def test_normalize_pads_single_digit():
    """Single-digit integer parts are zero-padded to two digits."""
    assert normalize_phase_id("2") == "02"
    assert normalize_phase_id(2) == "02"


def test_normalize_keeps_decimal():
    """The decimal part is kept as written."""
    assert normalize_phase_id("2.1") == "02.1"
    assert normalize_phase_id("02.10") == "02.10"


def test_normalize_leaves_wide_numbers():
    """Two or more digits are not changed."""
    assert normalize_phase_id("10") == "10"
    assert normalize_phase_id("123") == "123"


def test_normalize_drops_slug():
    """Only the leading phase number survives."""
    assert normalize_phase_id("2-auth") == "02"


def test_normalize_passes_through_non_numeric():
    """Identifiers that do not start with a digit are returned unchanged."""
    assert normalize_phase_id("auth") == "auth"


def test_normalize_is_idempotent():
    """Normalizing twice gives the same id."""
    for raw in ("1", "02", "3.2", "10.1"):
        once = normalize_phase_id(raw)
        assert normalize_phase_id(once) == once


def test_display_phase_number_strips_padding():
    """Roadmap headings use the unpadded number."""
    assert display_phase_number("02") == "2"
    assert display_phase_number("02.1") == "2.1"
    assert display_phase_number("10") == "10"


# --- slugify() and ordering tests ---


def test_slugify_collapses_separators():
    """Runs of non-alphanumerics become a single hyphen, trimmed at the edges."""
    assert slugify("User Auth & Sessions!") == "user-auth-sessions"
    assert slugify("  --Hello--  ") == "hello"
    assert slugify("!!!") == ""


def test_phase_sort_key_orders_decimals_numerically():
    """2 < 2.1 < 2.2 < 2.10 < 3, regardless of text order."""
    names = ["03-c", "02.10-x", "02.2-y", "02-a", "02.1-z"]
    assert sorted(names, key=phase_sort_key) == ["02-a", "02.1-z", "02.2-y", "02.10-x", "03-c"]


# --- find_phase_dir() tests ---


def test_find_phase_by_unpadded_number(tmp_path):
    """'2' resolves to the 02-* directory."""
    phases_dir = _make_phases(tmp_path, "01-setup", "02-auth", "03-api")
    phase = find_phase_dir(phases_dir, "2")
    assert phase.name == "02-auth"
    assert phase.phase_number == "02"
    assert phase.phase_name == "auth"
    assert phase.path == phases_dir / "02-auth"


def test_find_phase_prefers_exact_boundary(tmp_path):
    """'02' matches 02-auth rather than the decimal 02.1 directory."""
    phases_dir = _make_phases(tmp_path, "02.1-hotfix", "02-auth")
    assert find_phase_dir(phases_dir, "02").name == "02-auth"


def test_find_decimal_phase(tmp_path):
    """Decimal ids resolve to their own directory."""
    phases_dir = _make_phases(tmp_path, "02-auth", "02.1-hotfix")
    phase = find_phase_dir(phases_dir, "2.1")
    assert phase.name == "02.1-hotfix"
    assert phase.phase_number == "02.1"


def test_find_phase_without_name(tmp_path):
    """A bare numeric directory has no phase name."""
    phases_dir = _make_phases(tmp_path, "04")
    phase = find_phase_dir(phases_dir, "4")
    assert phase.phase_number == "04"
    assert phase.phase_name is None


def test_find_phase_missing_returns_none(tmp_path):
    """An unknown phase is absence, not an error."""
    phases_dir = _make_phases(tmp_path, "01-setup")
    assert find_phase_dir(phases_dir, "7") is None


def test_find_phase_without_phases_dir(tmp_path):
    """A project without .planning/phases has no phases."""
    assert find_phase_dir(tmp_path / ".planning" / "phases", "1") is None


def test_find_phase_ambiguity_is_lexicographic_and_logged(tmp_path):
    """Two directories for the same phase: the first by name wins and a warning is logged."""
    phases_dir = _make_phases(tmp_path, "02-zeta", "02-alpha")
    with patch.object(mod, "log") as mock_log:
        phase = find_phase_dir(phases_dir, "2")
    assert phase.name == "02-alpha"
    assert mock_log.called
    assert "02-alpha" in mock_log.call_args[0][0]


def test_find_phase_ignores_files(tmp_path):
    """Only directories count as phases."""
    phases_dir = _make_phases(tmp_path)
    (phases_dir / "02-notes.md").write_text("x")
    assert find_phase_dir(phases_dir, "2") is None


# --- next_decimal_phase() tests ---


def test_next_decimal_after_existing(tmp_path):
    """With 02.1 present the next decimal is 02.2."""
    phases_dir = _make_phases(tmp_path, "02-auth", "02.1-hotfix")
    outcome = next_decimal_phase(phases_dir, "2")
    assert outcome.found is True
    assert outcome.base_phase == "02"
    assert outcome.next == "02.2"
    assert outcome.existing == ["02.1"]


def test_next_decimal_first(tmp_path):
    """Without decimals the next one is .1."""
    phases_dir = _make_phases(tmp_path, "02-auth")
    outcome = next_decimal_phase(phases_dir, "02")
    assert outcome.next == "02.1"
    assert outcome.existing == []


def test_next_decimal_sorts_numerically(tmp_path):
    """02.10 outranks 02.9."""
    phases_dir = _make_phases(tmp_path, "02-auth", "02.9-a", "02.10-b")
    outcome = next_decimal_phase(phases_dir, "2")
    assert outcome.next == "02.11"
    assert outcome.existing == ["02.9", "02.10"]


def test_next_decimal_missing_base(tmp_path):
    """A missing base phase is reported, the candidate is still computed."""
    phases_dir = _make_phases(tmp_path, "01-setup")
    outcome = next_decimal_phase(phases_dir, "5")
    assert outcome.found is False
    assert outcome.next == "05.1"
