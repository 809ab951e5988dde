# tests/test_roadmap_history.py
# Unit tests for roadmap analysis and the summary history digest in plan-docs.py.

import importlib.util

spec = importlib.util.spec_from_file_location(
    "plan_docs", "scripts/plan-docs.py"
)
mod = importlib.util.module_from_spec(spec)
spec.loader.exec_module(mod)

roadmap_phases = mod.roadmap_phases
find_roadmap_phase = mod.find_roadmap_phase
phase_disk_status = mod.phase_disk_status
analyze_roadmap = mod.analyze_roadmap
history_digest = mod.history_digest


ROADMAP = """# Roadmap

## v1.0 MVP

- [x] **Phase 1: Setup** - scaffolding
- [ ] **Phase 2: Auth** - login

### Phase 1: Setup ✅

**Goal:** Project skeleton builds

### Phase 2: Auth (INSERTED)

**Goal:** Users can log in
**Depends on:** Phase 1

Plans:
- 02-01 backend

### Phase 2.1: Hotfix

**Goal:** Patch session bug

### Phase 3: Billing

**Goal:** Charge customers

## v2.0 Scale

### Phase 4: Sharding
"""

SUMMARY_SETUP = """---
phase: 01
plan: 01
dependency-graph:
  provides: [config loader, cli]
  affects: [auth]
patterns-established:
  - Scripts load siblings with importlib
key-decisions:
  - Use JSON config
tech-stack:
  added:
    - name: pyyaml
      version: 6.0
    - pytest
---

# Summary
"""

SUMMARY_SETUP_FOLLOWUP = """---
phase: 01
plan: 02
provides: [cli, logging]
---
"""

SUMMARY_AUTH = """---
plan: 01
key-decisions: [JWT over sessions]
tech-stack:
  added: [pyjwt, pyyaml]
---
"""


def _make_phases(tmp_path, phases):
    phases_dir = tmp_path / ".planning" / "phases"
    phases_dir.mkdir(parents=True)
    for name, files in phases.items():
        (phases_dir / name).mkdir()
        for filename, content in files.items():
            (phases_dir / name / filename).write_text(content)
    return phases_dir


def _roadmap_project(tmp_path):
    return _make_phases(tmp_path, {
        "01-setup": {"01-01-PLAN.md": "", "01-01-SUMMARY.md": ""},
        "02-auth": {"02-01-PLAN.md": "", "02-02-PLAN.md": "", "02-01-SUMMARY.md": ""},
        "02.1-hotfix": {"02.1-CONTEXT.md": ""},
        "03-billing": {"03-RESEARCH.md": ""},
    })


# --- roadmap_phases() tests ---


def test_roadmap_phases_sections_and_names():
    """Each section stops at the next heading of the same or a higher level."""
    phases = roadmap_phases(ROADMAP)
    assert [phase.number for phase in phases] == ["1", "2", "2.1", "3", "4"]
    assert [phase.name for phase in phases] == ["Setup", "Auth", "Hotfix", "Billing", "Sharding"]
    assert phases[0].section == "### Phase 1: Setup ✅\n\n**Goal:** Project skeleton builds"
    assert phases[3].section.endswith("**Goal:** Charge customers")
    assert "v2.0" not in phases[3].section


def test_roadmap_phase_goal_and_depends_on():
    """Goal and Depends on lines are read from the section."""
    phase = find_roadmap_phase(ROADMAP, "02")
    assert phase.goal == "Users can log in"
    assert phase.depends_on == "Phase 1"
    assert "- 02-01 backend" in phase.section
    assert find_roadmap_phase(ROADMAP, "2.1").goal == "Patch session bug"


def test_find_roadmap_phase_missing():
    """An undeclared phase is None."""
    assert find_roadmap_phase(ROADMAP, "9") is None
    assert find_roadmap_phase("# Roadmap\n", "1") is None


# --- phase_disk_status() tests ---


def test_disk_status_ignores_decimal_siblings(tmp_path):
    """Phase 02 only counts 02-auth, never 02.1-hotfix."""
    phases_dir = _roadmap_project(tmp_path)
    status = phase_disk_status(phases_dir, "2")
    assert status["directory"] == "02-auth"
    assert status["plan_count"] == 2
    assert status["summary_count"] == 1
    assert status["disk_status"] == "partial"


def test_disk_status_progression(tmp_path):
    """Context, research, plans and summaries advance the status."""
    phases_dir = _roadmap_project(tmp_path)
    _make_phases(tmp_path / "more", {"05-ops": {"05-01-PLAN.md": ""}, "06-docs": {}})
    more = tmp_path / "more" / ".planning" / "phases"
    assert phase_disk_status(phases_dir, "1")["disk_status"] == "complete"
    assert phase_disk_status(phases_dir, "2.1")["disk_status"] == "discussed"
    assert phase_disk_status(phases_dir, "3")["disk_status"] == "researched"
    assert phase_disk_status(phases_dir, "4")["disk_status"] == "no_directory"
    assert phase_disk_status(more, "5")["disk_status"] == "planned"
    assert phase_disk_status(more, "6")["disk_status"] == "empty"


# --- analyze_roadmap() tests ---


def test_analyze_roadmap(tmp_path):
    """Phases, milestones, totals and the current/next phase pointers."""
    result = analyze_roadmap(ROADMAP, _roadmap_project(tmp_path))
    assert result["milestones"] == [
        {"heading": "v1.0 MVP", "version": "v1.0"},
        {"heading": "v2.0 Scale", "version": "v2.0"},
    ]
    assert result["phase_count"] == 5
    assert result["completed_phases"] == 1
    assert result["total_plans"] == 3
    assert result["total_summaries"] == 2
    assert result["progress_percent"] == 67
    assert result["current_phase"] == "2"
    assert result["next_phase"] == "2.1"
    assert [phase["disk_status"] for phase in result["phases"]] == [
        "complete", "partial", "discussed", "researched", "no_directory",
    ]
    assert [phase["roadmap_complete"] for phase in result["phases"]] == [True, False, False, False, False]


def test_analyze_roadmap_without_phases_dir(tmp_path):
    """No phases directory means every phase has no directory."""
    result = analyze_roadmap(ROADMAP, tmp_path / "missing")
    assert result["progress_percent"] == 0
    assert result["current_phase"] is None
    assert result["next_phase"] == "1"


# --- history_digest() tests ---


def test_history_digest_rolls_up_summaries(tmp_path):
    """provides/affects/patterns per phase, decisions and tech stack overall, deduplicated."""
    phases_dir = _make_phases(tmp_path, {
        "01-setup": {
            "01-01-PLAN.md": "",
            "01-01-SUMMARY.md": SUMMARY_SETUP,
            "01-02-SUMMARY.md": SUMMARY_SETUP_FOLLOWUP,
        },
        "02-auth": {"02-01-SUMMARY.md": SUMMARY_AUTH},
    })
    digest = history_digest(phases_dir)
    assert digest["phases"] == {
        "01": {
            "name": "setup",
            "provides": ["config loader", "cli", "logging"],
            "affects": ["auth"],
            "patterns": ["Scripts load siblings with importlib"],
        },
        "02": {"name": "auth", "provides": [], "affects": [], "patterns": []},
    }
    assert digest["decisions"] == [
        {"phase": "01", "decision": "Use JSON config"},
        {"phase": "02", "decision": "JWT over sessions"},
    ]
    assert digest["tech_stack"] == ["pyyaml", "pytest", "pyjwt"]


def test_history_digest_empty(tmp_path):
    """A project without phases yields an empty digest."""
    assert history_digest(tmp_path / "missing") == {"phases": {}, "decisions": [], "tech_stack": []}
