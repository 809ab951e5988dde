#!/usr/bin/env python3
"""
Plan Verify: read-only structural checks over planning documents.

Checks plan structure, phase completeness, file references, commit
references, must_haves artifacts and key links, roadmap/disk consistency,
and summary self-checks. Every check returns a result object carrying
errors (blocking) and warnings (advisory); a check never raises for a
problem it was asked to find, and a missing target document yields None.

Usage:
    Loaded as a module by scripts/plan-tools.py.

Copyright (c) 2025 Martin Bechard [martin.bechard@DevConsult.ca]
"""

import importlib.util
import re
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional


def _load_script(module_name: str, filename: str):
    """Load a sibling script (hyphenated filename) as a module, once per process."""
    if module_name in sys.modules:
        return sys.modules[module_name]
    spec = importlib.util.spec_from_file_location(module_name, Path(__file__).resolve().parent / filename)
    mod = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = mod
    spec.loader.exec_module(mod)
    return mod


docs = _load_script("plan_docs", "plan-docs.py")

# ─── Patterns ─────────────────────────────────────────────────────────

REQUIRED_PLAN_FIELDS = (
    "phase", "plan", "type", "wave", "depends_on", "files_modified", "autonomous", "must_haves",
)

TASK_BLOCK_PATTERN = re.compile(r"<task(?=[\s>])(?P<attrs>[^>]*)>(?P<body>.*?)</task>", re.DOTALL)
TASK_NAME_PATTERN = re.compile(r"<name>(.*?)</name>", re.DOTALL)
TASK_TYPE_PATTERN = re.compile(r"""\btype\s*=\s*["']?([\w:-]+)""")

AT_REFERENCE_PATTERN = re.compile(r"@([^\s,)`]+/[^\s,)`]+)")
BACKTICK_PATH_PATTERN = re.compile(r"`([^`\s]+/[^`\s]+\.[A-Za-z]{1,10})`")
ACTION_PATH_PATTERN = re.compile(r"(?:Created|Modified|Added|Updated|Edited|Action):\s*`?([^\s`]+)`?")
COMMIT_HASH_PATTERN = re.compile(r"\b[0-9a-f]{7,40}\b")

SELF_CHECK_HEADING = re.compile(r"^(#{1,6})[ \t]*(?:Self[- ]?Check|Verification|Quality Check)\b", re.IGNORECASE | re.MULTILINE)
SELF_CHECK_FAILED = re.compile(r"fail|✗|❌|incomplete|blocked", re.IGNORECASE)
SELF_CHECK_PASSED = re.compile(r"pass|✓|✅|complete|succeeded", re.IGNORECASE)

DEFAULT_SUMMARY_CHECK_COUNT = 2
SUMMARY_COMMIT_PROBES = 3

# ─── Result Types ─────────────────────────────────────────────────────


@dataclass
class TaskCheck:
    name: Optional[str]
    type: Optional[str]
    has_files: bool
    has_action: bool
    has_verify: bool
    has_done: bool


@dataclass
class PlanStructureResult:
    valid: bool
    errors: list[str]
    warnings: list[str]
    task_count: int
    tasks: list[TaskCheck]
    frontmatter_fields: list[str]


@dataclass
class PhaseCompletenessResult:
    complete: bool
    phase: str
    plan_count: int
    summary_count: int
    incomplete_plans: list[str]
    orphan_summaries: list[str]
    errors: list[str]
    warnings: list[str]


@dataclass
class ReferenceResult:
    valid: bool
    found: list[str]
    missing: list[str]
    total: int


@dataclass
class CommitCheckResult:
    all_valid: bool
    valid: list[str]
    invalid: list[str]
    total: int


@dataclass
class ArtifactCheck:
    path: str
    exists: bool
    issues: list[str]
    passed: bool


@dataclass
class ArtifactReport:
    all_passed: bool
    passed: int
    total: int
    artifacts: list[ArtifactCheck]
    error: Optional[str] = None


@dataclass
class KeyLinkCheck:
    source: str
    target: str
    via: str
    verified: bool
    detail: str

    def to_dict(self) -> dict:
        return {"from": self.source, "to": self.target, "via": self.via,
                "verified": self.verified, "detail": self.detail}


@dataclass
class KeyLinkReport:
    all_verified: bool
    verified: int
    total: int
    links: list[KeyLinkCheck]
    error: Optional[str] = None

    def to_dict(self) -> dict:
        result = {
            "all_verified": self.all_verified,
            "verified": self.verified,
            "total": self.total,
            "links": [link.to_dict() for link in self.links],
        }
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class ConsistencyResult:
    """passed is false only when an error was found; warnings never fail the check."""
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "passed": self.passed,
            "errors": self.errors,
            "warnings": self.warnings,
            "warning_count": len(self.warnings),
        }


@dataclass
class SummaryCheckResult:
    passed: bool
    summary_exists: bool
    files_checked: int = 0
    files_found: list[str] = field(default_factory=list)
    missing_files: list[str] = field(default_factory=list)
    commits_exist: bool = False
    self_check: str = "not_found"
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "passed": self.passed,
            "checks": {
                "summary_exists": self.summary_exists,
                "files_created": {
                    "checked": self.files_checked,
                    "found": len(self.files_found),
                    "missing": self.missing_files,
                },
                "commits_exist": self.commits_exist,
                "self_check": self.self_check,
            },
            "errors": self.errors,
        }


def to_output(result) -> Optional[dict]:
    """Convert a result object to the dict printed by the command line."""
    if result is None:
        return None
    if hasattr(result, "to_dict"):
        return result.to_dict()
    return asdict(result)


# ─── Helpers ──────────────────────────────────────────────────────────


def _resolve(root: Path, path: str) -> Path:
    candidate = Path(path)
    return candidate if candidate.is_absolute() else root / candidate


def _is_ignorable_reference(ref: str) -> bool:
    """URLs and template placeholders are not file references."""
    return ref.startswith("http") or "://" in ref or "${" in ref or "{{" in ref


def _text_or_none(path: Path) -> Optional[str]:
    return docs.read_document(path) if path.is_file() else None


# ─── Plan Structure ───────────────────────────────────────────────────


def verify_plan_structure(path: Path) -> Optional[PlanStructureResult]:
    """Validate a plan's required fields and its <task> elements.

    Errors: a missing required field, a task without <name> or <action>, and
    a checkpoint task in a plan not declared autonomous: false.
    Warnings: no tasks at all, a task without <verify>, <done> or <files>,
    and wave > 1 with nothing in depends_on.
    """
    content = _text_or_none(path)
    if content is None:
        return None

    fm = docs.extract_frontmatter(content)
    errors: list[str] = []
    warnings: list[str] = []

    for name in REQUIRED_PLAN_FIELDS:
        if name not in fm:
            errors.append(f"Missing required frontmatter field: {name}")

    tasks: list[TaskCheck] = []
    for match in TASK_BLOCK_PATTERN.finditer(content):
        body = match.group("body")
        name_match = TASK_NAME_PATTERN.search(body)
        type_match = TASK_TYPE_PATTERN.search(match.group("attrs"))
        task = TaskCheck(
            name=name_match.group(1).strip() if name_match else None,
            type=type_match.group(1) if type_match else None,
            has_files="<files>" in body,
            has_action="<action>" in body,
            has_verify="<verify>" in body,
            has_done="<done>" in body,
        )
        tasks.append(task)

        label = task.name or f"task {len(tasks)}"
        if not task.name:
            errors.append(f"Task {len(tasks)} missing <name> element")
        if not task.has_action:
            errors.append(f"Task '{label}' missing <action> element")
        if not task.has_verify:
            warnings.append(f"Task '{label}' missing <verify> element")
        if not task.has_done:
            warnings.append(f"Task '{label}' missing <done> element")
        if not task.has_files:
            warnings.append(f"Task '{label}' missing <files> element")

    if not tasks:
        warnings.append("No <task> elements found")

    wave = docs.as_int(fm.get("wave"))
    if wave is not None and wave > 1 and not docs.as_list(fm.get("depends_on")):
        warnings.append(f"Wave {wave} plan has no depends_on entries")

    has_checkpoint = any((task.type or "").startswith("checkpoint") for task in tasks)
    if has_checkpoint and docs.as_bool(fm.get("autonomous"), True):
        errors.append("Plan has checkpoint tasks but autonomous is not false")

    return PlanStructureResult(
        valid=not errors,
        errors=errors,
        warnings=warnings,
        task_count=len(tasks),
        tasks=tasks,
        frontmatter_fields=list(fm.keys()),
    )


# ─── Phase Completeness ───────────────────────────────────────────────


def verify_phase_completeness(phases_dir: Path, identifier) -> Optional[PhaseCompletenessResult]:
    """Every plan needs a summary; summaries without a plan are only warned about."""
    phase = docs.find_phase_dir(phases_dir, identifier)
    if phase is None:
        return None

    inventory = docs.inventory_phase(phase)
    incomplete = inventory.incomplete_plans
    orphans = inventory.orphan_summaries
    return PhaseCompletenessResult(
        complete=not incomplete,
        phase=phase.phase_number,
        plan_count=len(inventory.plans),
        summary_count=len(inventory.summaries),
        incomplete_plans=incomplete,
        orphan_summaries=orphans,
        errors=[f"Plans without summaries: {', '.join(incomplete)}"] if incomplete else [],
        warnings=[f"Summaries without plans: {', '.join(orphans)}"] if orphans else [],
    )


# ─── References ───────────────────────────────────────────────────────


def collect_references(content: str) -> list[tuple[str, str]]:
    """Return (reference, kind) pairs in document order, without duplicates."""
    seen: set[str] = set()
    references: list[tuple[str, str]] = []
    for pattern, kind in ((AT_REFERENCE_PATTERN, "at"), (BACKTICK_PATH_PATTERN, "backtick")):
        for match in pattern.finditer(content):
            ref = match.group(1)
            if ref in seen or _is_ignorable_reference(ref):
                continue
            seen.add(ref)
            references.append((ref, kind))
    return references


def verify_references(path: Path, root: Path) -> Optional[ReferenceResult]:
    """Check that @-references and backtick paths in a document exist under root."""
    content = _text_or_none(path)
    if content is None:
        return None

    found: list[str] = []
    missing: list[str] = []
    for ref, kind in collect_references(content):
        if kind == "at" and ref.startswith("~/"):
            target = Path.home() / ref[2:]
        else:
            target = _resolve(root, ref)
        (found if target.exists() else missing).append(ref)

    return ReferenceResult(valid=not missing, found=found, missing=missing, total=len(found) + len(missing))


# ─── Commits ──────────────────────────────────────────────────────────


def verify_commits(root: Path, hashes: list[str],
                   timeout: int = docs.DEFAULT_GIT_TIMEOUT_SECONDS) -> CommitCheckResult:
    """Each hash must resolve to a commit object in the repository at root."""
    valid: list[str] = []
    invalid: list[str] = []
    for ref in hashes:
        (valid if docs.is_commit(root, ref, timeout=timeout) else invalid).append(ref)
    return CommitCheckResult(all_valid=not invalid, valid=valid, invalid=invalid, total=len(hashes))


# ─── must_haves ───────────────────────────────────────────────────────


def _must_haves_entries(fm: dict, key: str) -> list[dict]:
    must_haves = fm.get("must_haves")
    if not isinstance(must_haves, dict):
        return []
    entries = must_haves.get(key)
    if not isinstance(entries, list):
        return []
    return [entry for entry in entries if isinstance(entry, dict)]


def check_artifact(root: Path, spec: dict) -> ArtifactCheck:
    artifact_path = str(spec.get("path", ""))
    text = _text_or_none(_resolve(root, artifact_path)) if artifact_path else None
    if text is None:
        return ArtifactCheck(path=artifact_path, exists=False, issues=["File not found"], passed=False)

    issues: list[str] = []
    min_lines = docs.as_int(spec.get("min_lines"))
    if min_lines is not None:
        line_count = len(text.splitlines())
        if line_count < min_lines:
            issues.append(f"Only {line_count} lines, need {min_lines}")

    contains = spec.get("contains")
    if isinstance(contains, str) and contains and contains not in text:
        issues.append(f"Missing pattern: {contains}")

    exports = spec.get("exports")
    for name in docs.as_list(exports) if exports is not None else []:
        if isinstance(name, str) and name not in text:
            issues.append(f"Missing export: {name}")

    return ArtifactCheck(path=artifact_path, exists=True, issues=issues, passed=not issues)


def verify_artifacts(path: Path, root: Path) -> Optional[ArtifactReport]:
    """Check must_haves.artifacts: existence, min_lines, contains, exports."""
    content = _text_or_none(path)
    if content is None:
        return None

    specs = [spec for spec in _must_haves_entries(docs.extract_frontmatter(content), "artifacts") if spec.get("path")]
    if not specs:
        return ArtifactReport(all_passed=False, passed=0, total=0, artifacts=[],
                              error="No must_haves.artifacts found in frontmatter")

    checks = [check_artifact(root, spec) for spec in specs]
    passed = sum(1 for check in checks if check.passed)
    return ArtifactReport(all_passed=passed == len(checks), passed=passed, total=len(checks), artifacts=checks)


def check_key_link(root: Path, spec: dict) -> KeyLinkCheck:
    source = str(spec.get("from", ""))
    target = str(spec.get("to", ""))
    via = str(spec.get("via", ""))

    source_text = _text_or_none(_resolve(root, source)) if source else None
    if source_text is None:
        return KeyLinkCheck(source, target, via, verified=False, detail="Source file not found")

    pattern = spec.get("pattern")
    if isinstance(pattern, str) and pattern:
        try:
            regex = re.compile(pattern)
        except re.error:
            return KeyLinkCheck(source, target, via, verified=False, detail=f"Invalid regex pattern: {pattern}")
        if regex.search(source_text):
            return KeyLinkCheck(source, target, via, verified=True, detail="Pattern found in source")
        target_text = _text_or_none(_resolve(root, target)) if target else None
        if target_text is not None and regex.search(target_text):
            return KeyLinkCheck(source, target, via, verified=True, detail="Pattern found in target")
        return KeyLinkCheck(source, target, via, verified=False,
                            detail=f"Pattern '{pattern}' not found in source or target")

    if target and target in source_text:
        return KeyLinkCheck(source, target, via, verified=True, detail="Target referenced in source")
    return KeyLinkCheck(source, target, via, verified=False, detail="Target not referenced in source")


def verify_key_links(path: Path, root: Path) -> Optional[KeyLinkReport]:
    """Check must_haves.key_links: the source mentions the target or matches the pattern."""
    content = _text_or_none(path)
    if content is None:
        return None

    specs = _must_haves_entries(docs.extract_frontmatter(content), "key_links")
    if not specs:
        return KeyLinkReport(all_verified=False, verified=0, total=0, links=[],
                             error="No must_haves.key_links found in frontmatter")

    checks = [check_key_link(root, spec) for spec in specs]
    verified = sum(1 for check in checks if check.verified)
    return KeyLinkReport(all_verified=verified == len(checks), verified=verified, total=len(checks), links=checks)


# ─── Consistency ──────────────────────────────────────────────────────


def validate_consistency(config) -> ConsistencyResult:
    """Cross-check ROADMAP.md phases against phase directories on disk.

    Only a missing roadmap is an error. Phases declared on one side but not
    the other, gaps in integer phase numbering, gaps in plan numbering,
    summaries without plans, and plans without a wave are warnings.
    """
    result = ConsistencyResult()
    roadmap = docs.read_document(config.roadmap_path)
    if roadmap is None:
        result.errors.append("ROADMAP.md not found")
        return result

    roadmap_phases = {docs.normalize_phase_id(number) for number in docs.roadmap_phase_numbers(roadmap)}
    dir_names = sorted(docs.list_phase_dir_names(config.phases_dir), key=docs.phase_sort_key)
    disk_phases: set[str] = set()
    for name in dir_names:
        match = docs.PHASE_DIR_PATTERN.match(name)
        if match:
            disk_phases.add(docs.normalize_phase_id(match.group(1)))

    for phase in sorted(roadmap_phases - disk_phases, key=docs.phase_sort_key):
        result.warnings.append(f"Phase {phase} in ROADMAP.md but no directory on disk")
    for phase in sorted(disk_phases - roadmap_phases, key=docs.phase_sort_key):
        result.warnings.append(f"Phase {phase} exists on disk but not in ROADMAP.md")

    integers = sorted({int(phase.split(".")[0]) for phase in roadmap_phases | disk_phases if phase[:1].isdigit()})
    for previous, current in zip(integers, integers[1:]):
        if current != previous + 1:
            result.warnings.append(f"Gap in phase numbering: {previous} → {current}")

    for name in dir_names:
        _check_phase_directory(docs.PhaseDir(name=name, path=config.phases_dir / name), result)

    return result


def _check_phase_directory(phase, result: ConsistencyResult) -> None:
    inventory = docs.inventory_phase(phase)

    numbers = []
    for plan in inventory.plans:
        match = docs.PLAN_NUMBER_PATTERN.search(plan)
        if match:
            numbers.append(int(match.group(1)))
    numbers.sort()
    for previous, current in zip(numbers, numbers[1:]):
        if current != previous + 1:
            result.warnings.append(f"Gap in plan numbering in {phase.name}: plan {previous} → {current}")

    for orphan in inventory.orphan_summaries:
        result.warnings.append(f"Summary {orphan}-SUMMARY.md in {phase.name} has no matching PLAN.md")

    for plan in inventory.plans:
        fm = docs.extract_frontmatter(docs.read_document(phase.path / plan) or "")
        if "wave" not in fm:
            result.warnings.append(f"{phase.name}/{plan}: missing 'wave' in frontmatter")


# ─── Summary ──────────────────────────────────────────────────────────


def summary_file_mentions(content: str, limit: int) -> list[str]:
    """First limit distinct file paths a summary claims to have touched."""
    mentions: list[str] = []
    candidates = [m.group(1) for m in BACKTICK_PATH_PATTERN.finditer(content)]
    candidates += [m.group(1) for m in ACTION_PATH_PATTERN.finditer(content)]
    for candidate in candidates:
        if "/" not in candidate or _is_ignorable_reference(candidate) or candidate in mentions:
            continue
        mentions.append(candidate)
        if len(mentions) >= limit:
            break
    return mentions


def self_check_status(content: str) -> str:
    """Classify the self-check section as passed, failed, or not_found.

    Only the section under the self-check heading is read, up to the next
    heading of the same or a higher level. Failure keywords win over success
    keywords.
    """
    heading = SELF_CHECK_HEADING.search(content)
    if not heading:
        return "not_found"

    level = len(heading.group(1))
    rest = content[heading.end():]
    next_heading = re.search(rf"^#{{1,{level}}}[ \t]", rest, re.MULTILINE)
    section = rest[:next_heading.start()] if next_heading else rest

    if SELF_CHECK_FAILED.search(section):
        return "failed"
    if SELF_CHECK_PASSED.search(section):
        return "passed"
    return "not_found"


def verify_summary(path: Path, root: Path, check_count: int = DEFAULT_SUMMARY_CHECK_COUNT,
                   timeout: int = docs.DEFAULT_GIT_TIMEOUT_SECONDS) -> SummaryCheckResult:
    """Spot-check a SUMMARY.md against the repository.

    Probes the first check_count mentioned files for existence, up to three
    commit hashes, and the self-check verdict. Passing requires no missing
    files and a self-check that is not failed.
    """
    content = _text_or_none(path)
    if content is None:
        return SummaryCheckResult(passed=False, summary_exists=False, errors=["SUMMARY.md not found"])

    mentions = summary_file_mentions(content, check_count)
    found = [mention for mention in mentions if _resolve(root, mention).exists()]
    missing = [mention for mention in mentions if mention not in found]

    hashes = []
    for match in COMMIT_HASH_PATTERN.finditer(content):
        if match.group(0) not in hashes:
            hashes.append(match.group(0))
        if len(hashes) >= SUMMARY_COMMIT_PROBES:
            break
    commits_exist = any(docs.is_commit(root, ref, timeout=timeout) for ref in hashes)

    self_check = self_check_status(content)
    errors = [f"Missing file: {mention}" for mention in missing]
    if hashes and not commits_exist:
        errors.append("Referenced commit hashes not found in git history")
    if self_check == "failed":
        errors.append("Self-check section reports failure")

    return SummaryCheckResult(
        passed=not missing and self_check != "failed",
        summary_exists=True,
        files_checked=len(mentions),
        files_found=found,
        missing_files=missing,
        commits_exist=commits_exist,
        self_check=self_check,
        errors=errors,
    )
