#!/usr/bin/env python3
"""
Plan Docs: metadata engine for phase/plan planning documents.

Reads and rewrites the frontmatter header of planning Markdown files,
addresses phase directories under .planning/phases/, indexes plans and
summaries, and patches inline fields and sections of the STATE.md tracking
document. Every call re-derives state from the file system; nothing is cached
between invocations.

Usage:
    Loaded as a module by scripts/plan-tools.py and scripts/plan-verify.py.

Copyright (c) 2025 Martin Bechard [martin.bechard@DevConsult.ca]
"""

import fcntl
import re
import subprocess
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

import yaml

# ─── Configuration ────────────────────────────────────────────────────

PLANNING_DIR_NAME = ".planning"
PHASES_DIR_NAME = "phases"
ROADMAP_FILENAME = "ROADMAP.md"
STATE_FILENAME = "STATE.md"
CONFIG_FILENAME = "config.json"

DEFAULT_GIT_TIMEOUT_SECONDS = 30

PREFERENCE_DEFAULTS = {
    "model_profile": "balanced",
    "commit_docs": True,
    "search_gitignored": False,
    "branching_strategy": "none",
    "phase_branch_template": "plan/phase-{phase}-{slug}",
    "milestone_branch_template": "plan/{milestone}-{slug}",
    "research": True,
    "plan_checker": True,
    "verifier": True,
    "parallelization": True,
    "git_timeout_seconds": DEFAULT_GIT_TIMEOUT_SECONDS,
}

# Older config files nest some preferences under a section.
# Maps preference key -> (section, field) where the legacy value lives.
LEGACY_PREFERENCE_LOCATIONS = {
    "commit_docs": ("planning", "commit_docs"),
    "search_gitignored": ("planning", "search_gitignored"),
    "branching_strategy": ("git", "branching_strategy"),
    "phase_branch_template": ("git", "phase_branch_template"),
    "milestone_branch_template": ("git", "milestone_branch_template"),
    "research": ("workflow", "research"),
    "plan_checker": ("workflow", "plan_check"),
    "verifier": ("workflow", "verifier"),
}


@dataclass
class PlanningConfig:
    """Project root plus resolved preferences, passed explicitly to every operation."""
    root: Path
    preferences: dict = field(default_factory=lambda: dict(PREFERENCE_DEFAULTS))

    @property
    def planning_dir(self) -> Path:
        return self.root / PLANNING_DIR_NAME

    @property
    def phases_dir(self) -> Path:
        return self.planning_dir / PHASES_DIR_NAME

    @property
    def roadmap_path(self) -> Path:
        return self.planning_dir / ROADMAP_FILENAME

    @property
    def state_path(self) -> Path:
        return self.planning_dir / STATE_FILENAME

    @property
    def config_path(self) -> Path:
        return self.planning_dir / CONFIG_FILENAME

    @property
    def commit_docs(self) -> bool:
        return bool(self.preferences.get("commit_docs", True))

    @property
    def git_timeout(self) -> int:
        try:
            return int(self.preferences.get("git_timeout_seconds", DEFAULT_GIT_TIMEOUT_SECONDS))
        except (TypeError, ValueError):
            return DEFAULT_GIT_TIMEOUT_SECONDS


def read_preferences_file(config_path: Path) -> dict:
    """Load the raw preferences mapping from .planning/config.json.

    JSON is a subset of YAML, so the YAML loader reads it directly. Returns
    an empty dict when the file is missing, unreadable, malformed, or does
    not hold a mapping.
    """
    try:
        with open(config_path, "r") as f:
            parsed = yaml.safe_load(f)
        return parsed if isinstance(parsed, dict) else {}
    except (IOError, yaml.YAMLError):
        return {}


def resolve_preferences(raw: dict) -> dict:
    """Merge a raw preferences mapping over PREFERENCE_DEFAULTS.

    Top-level keys win over their legacy nested location. An explicit false
    is kept; only a missing value falls back to the default.
    """
    resolved = dict(PREFERENCE_DEFAULTS)
    for key in PREFERENCE_DEFAULTS:
        if key in raw and raw[key] is not None:
            resolved[key] = raw[key]
            continue
        location = LEGACY_PREFERENCE_LOCATIONS.get(key)
        if location:
            section = raw.get(location[0])
            if isinstance(section, dict) and section.get(location[1]) is not None:
                resolved[key] = section[location[1]]

    parallelization = raw.get("parallelization")
    if isinstance(parallelization, dict):
        enabled = parallelization.get("enabled")
        resolved["parallelization"] = (
            enabled if isinstance(enabled, bool) else PREFERENCE_DEFAULTS["parallelization"]
        )
    elif not isinstance(parallelization, bool):
        resolved["parallelization"] = PREFERENCE_DEFAULTS["parallelization"]
    return resolved


def load_config(root: Union[str, Path]) -> PlanningConfig:
    """Build the PlanningConfig for a project root."""
    root_path = Path(root).resolve()
    config = PlanningConfig(root=root_path)
    config.preferences = resolve_preferences(read_preferences_file(config.config_path))
    return config


# ─── Logging ──────────────────────────────────────────────────────────

# Global verbose flag, set by the --verbose option of plan-tools.py
VERBOSE = False
LOG_TAG = "PLAN-TOOLS"


def log(message: str) -> None:
    """Print a timestamped diagnostic line.

    Standard output is reserved for the single JSON (or raw) command result,
    so diagnostics always go to standard error.
    """
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] [{LOG_TAG}] {message}", file=sys.stderr, flush=True)


def verbose_log(message: str, prefix: str = "VERBOSE") -> None:
    """Print a verbose log message if verbose mode is enabled."""
    if VERBOSE:
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        print(f"[{timestamp}] [{prefix}] {message}", file=sys.stderr, flush=True)


# ─── Document I/O ─────────────────────────────────────────────────────


def read_document(path: Path) -> Optional[str]:
    """Return the text of a document, or None if it does not exist."""
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            return f.read()
    except (FileNotFoundError, IsADirectoryError):
        return None


def update_document(path: Path, transform: Callable[[str], Optional[str]]) -> bool:
    """Read-modify-write a document under an exclusive advisory lock.

    transform receives the current text and returns the replacement text, or
    None to leave the file alone. The lock serializes parallel invocations
    that patch the same tracking document. Returns True if the file was
    rewritten. Raises FileNotFoundError if the document does not exist.
    """
    with open(path, "r+", encoding="utf-8", newline="") as handle:
        fcntl.flock(handle, fcntl.LOCK_EX)
        try:
            original = handle.read()
            updated = transform(original)
            if updated is None or updated == original:
                return False
            handle.seek(0)
            handle.write(updated)
            handle.truncate()
            return True
        finally:
            fcntl.flock(handle, fcntl.LOCK_UN)


# ─── Frontmatter Codec ────────────────────────────────────────────────
#
# Grammar of the supported frontmatter subset (one construct per line):
#
#   block       := "---" NL line* "---"
#   line        := blank | comment | entry | item
#   entry       := INDENT key ":" [ value ]
#   value       := "" | "[" | "[" element ("," element)* "]" | scalar
#   item        := INDENT "- " ( key ":" [ value ] | scalar )
#   key         := [A-Za-z0-9_-]+
#   scalar      := text, optionally wrapped in matching single or double quotes
#
# An entry with an empty value opens a child container whose kind is decided
# by the next deeper line: items turn it into a list, entries keep it a
# mapping. Indentation only has to be deeper than the owning line; it is not
# required to be a fixed width. An item of the form "- key: value" starts a
# mapping inside the list, continued by deeper entries.

FrontmatterValue = Union[str, list, dict]

_CLOSING_DELIMITER = re.compile(r"^---[ \t]*$", re.MULTILINE)
_OPENING_DELIMITER = "---\n"
_ENTRY_LINE = re.compile(r"^(\s*)([A-Za-z0-9_-]+):\s*(.*)$")
_ITEM_LINE = re.compile(r"^(\s*)- (.*)$")
_ITEM_ENTRY = re.compile(r"^([A-Za-z0-9_-]+):(?:\s+(.*))?$")
_QUOTE_CHARS = "\"'"

INLINE_LIST_MAX_ITEMS = 3
INLINE_LIST_MAX_WIDTH = 60


@dataclass
class _Frame:
    """An open container while parsing, with the indentation that owns it."""
    container: Union[list, dict]
    indent: int
    parent: Optional[dict] = None
    key: Optional[str] = None


def _locate_block(content: str) -> Optional[tuple[str, int]]:
    """Return (block text, offset just past the closing delimiter), or None."""
    if not content.startswith(_OPENING_DELIMITER):
        return None
    closing = _CLOSING_DELIMITER.search(content, len(_OPENING_DELIMITER))
    if not closing:
        return None
    return content[len(_OPENING_DELIMITER):closing.start()], closing.end()


def _unquote(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in _QUOTE_CHARS:
        return text[1:-1]
    return text


def _split_inline_list(inner: str) -> list[str]:
    values = [_unquote(part.strip()) for part in inner.split(",")]
    return [value for value in values if value]


def _add_entry(stack: list[_Frame], indent: int, key: str, value: str) -> None:
    frame = stack[-1]
    container = frame.container
    if not isinstance(container, dict):
        verbose_log(f"Ignoring '{key}:' inside a list", "FRONTMATTER")
        return

    if value == "" or value == "[":
        child: Union[list, dict] = [] if value == "[" else {}
        container[key] = child
        stack.append(_Frame(child, indent, parent=container, key=key))
    elif value.startswith("[") and value.endswith("]"):
        container[key] = _split_inline_list(value[1:-1])
    else:
        container[key] = _unquote(value)


def _add_item(stack: list[_Frame], indent: int, content: str) -> None:
    frame = stack[-1]
    container = frame.container

    if isinstance(container, dict):
        # An empty mapping opened by "key:" becomes a list on its first item
        if container or frame.parent is None:
            verbose_log(f"Ignoring list item outside a list: {content!r}", "FRONTMATTER")
            return
        promoted: list = []
        frame.parent[frame.key] = promoted
        frame.container = promoted
        container = promoted

    entry = None if content[:1] in _QUOTE_CHARS else _ITEM_ENTRY.match(content)
    if entry is None:
        container.append(_unquote(content))
        return

    item: dict = {}
    container.append(item)
    # The item mapping is owned by the dash column, so continuation entries
    # at the key column stay inside it and the next dash closes it.
    stack.append(_Frame(item, indent + 1))
    _add_entry(stack, indent + 2, entry.group(1), (entry.group(2) or "").strip())


def parse_frontmatter_block(text: str) -> dict:
    """Parse the text between the --- delimiters into a value tree."""
    root: dict = {}
    stack = [_Frame(root, -1)]

    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        indent = len(line) - len(line.lstrip())

        item = _ITEM_LINE.match(line.rstrip())
        if item:
            while len(stack) > 1 and stack[-1].indent > indent:
                stack.pop()
            _add_item(stack, indent, item.group(2).strip())
            continue

        while len(stack) > 1 and stack[-1].indent >= indent:
            stack.pop()
        entry = _ENTRY_LINE.match(line)
        if entry:
            _add_entry(stack, indent, entry.group(2), entry.group(3).strip())
        else:
            verbose_log(f"Ignoring unparsable frontmatter line: {line!r}", "FRONTMATTER")

    return root


def extract_frontmatter(content: str) -> dict:
    """Return the frontmatter value tree of a document ({} when there is none)."""
    block = _locate_block(content)
    if block is None:
        return {}
    return parse_frontmatter_block(block[0])


def _scalar_text(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _needs_quotes(text: str) -> bool:
    return (
        text == ""
        or text != text.strip()
        or ":" in text
        or "#" in text
        or text[0] in "[{"
        or text[0] in _QUOTE_CHARS
        or text[-1] in _QUOTE_CHARS
    )


def _render_scalar(value) -> str:
    text = _scalar_text(value)
    return f'"{text}"' if _needs_quotes(text) else text


def _fits_inline(values: list) -> bool:
    if len(values) > INLINE_LIST_MAX_ITEMS:
        return False
    if not all(isinstance(value, str) for value in values):
        return False
    if any(_needs_quotes(value) or any(ch in value for ch in ",[]") for value in values):
        return False
    return len(", ".join(values)) < INLINE_LIST_MAX_WIDTH


def _emit_item(lines: list[str], item, indent: int) -> None:
    pad = " " * indent
    if isinstance(item, dict) and any(value is not None for value in item.values()):
        start = len(lines)
        for key, value in item.items():
            _emit_value(lines, key, value, indent + 2)
        lines[start] = f"{pad}- {lines[start][indent + 2:]}"
    else:
        lines.append(f"{pad}- {_render_scalar(item)}")


def _emit_value(lines: list[str], key: str, value, indent: int) -> None:
    if value is None:
        return
    pad = " " * indent
    if isinstance(value, dict):
        lines.append(f"{pad}{key}:")
        for child_key, child in value.items():
            _emit_value(lines, child_key, child, indent + 2)
    elif isinstance(value, (list, tuple)):
        if not value:
            lines.append(f"{pad}{key}: []")
        elif _fits_inline(list(value)):
            lines.append(f"{pad}{key}: [{', '.join(value)}]")
        else:
            lines.append(f"{pad}{key}:")
            for item in value:
                _emit_item(lines, item, indent + 2)
    else:
        lines.append(f"{pad}{key}: {_render_scalar(value)}")


def reconstruct_frontmatter(tree: dict) -> str:
    """Serialize a value tree to frontmatter lines (without the delimiters).

    Short lists of plain strings (at most 3 items, under 60 characters
    joined) are written inline as [a, b]; other lists are written as block
    items. Scalars are double-quoted when they contain ':' or '#', start
    with '[' or '{', carry edge quotes or whitespace, or are empty, so that
    extract_frontmatter reads back the same value.
    """
    lines: list[str] = []
    for key, value in tree.items():
        _emit_value(lines, key, value, 0)
    return "\n".join(lines)


def splice_frontmatter(content: str, tree: dict) -> str:
    """Replace the document's frontmatter block with tree, or prepend one."""
    rendered = reconstruct_frontmatter(tree)
    block = _locate_block(content)
    if block is None:
        return f"---\n{rendered}\n---\n\n{content}"
    return f"---\n{rendered}\n---{content[block[1]:]}"


def frontmatter_body(content: str) -> str:
    """Return the document without its frontmatter block, leading whitespace trimmed."""
    block = _locate_block(content)
    if block is None:
        return content
    return content[block[1]:].lstrip()


def coerce_cli_value(text: str):
    """Turn a command-line value into true/false, an int, a float, or the string itself."""
    if text == "true":
        return True
    if text == "false":
        return False
    if re.fullmatch(r"\d+", text):
        return int(text)
    if re.fullmatch(r"\d+\.\d+", text):
        return float(text)
    return text


def as_list(value) -> list[str]:
    """Read a frontmatter value as a list of strings.

    A bare "key:" with nothing under it parses as an empty mapping, and a
    single scalar stands for a one-element list.
    """
    if value is None or value == "" or value == {}:
        return []
    if isinstance(value, list):
        return [_scalar_text(item) if not isinstance(item, (dict, list)) else item for item in value]
    if isinstance(value, dict):
        return list(value.keys())
    return [_scalar_text(value)]


def as_bool(value, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("false", "no", "off", "0"):
        return False
    if text in ("true", "yes", "on", "1"):
        return True
    return default


def as_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    match = re.match(r"^\s*(\d+)", str(value)) if value is not None else None
    return int(match.group(1)) if match else None


# ─── Phase Addressing ─────────────────────────────────────────────────

PHASE_ID_PATTERN = re.compile(r"^(\d+)(?:\.(\d+))?")
PHASE_DIR_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)-?(.*)$")


def normalize_phase_id(identifier) -> str:
    """Zero-pad the integer part of a phase id: "2" -> "02", "2.1" -> "02.1".

    Only the leading number is kept ("2-auth" -> "02"). Input that does not
    start with a digit is returned unchanged.
    """
    text = str(identifier).strip()
    match = PHASE_ID_PATTERN.match(text)
    if not match:
        return text
    integer, decimal = match.groups()
    padded = integer.zfill(2)
    return f"{padded}.{decimal}" if decimal is not None else padded


def display_phase_number(identifier) -> str:
    """Phase number as written in ROADMAP.md headings: "02.1" -> "2.1"."""
    normalized = normalize_phase_id(identifier)
    match = PHASE_ID_PATTERN.match(normalized)
    if not match:
        return normalized
    integer, decimal = match.groups()
    return f"{int(integer)}.{decimal}" if decimal is not None else str(int(integer))


def slugify(text: str) -> str:
    """Lowercase, collapse runs outside [a-z0-9] to one hyphen, trim edge hyphens."""
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def phase_sort_key(name: str) -> tuple:
    """Numeric ordering for phase directory names: 2 < 2.1 < 2.10 < 3."""
    match = PHASE_ID_PATTERN.match(name)
    if not match:
        return (float("inf"), 0, name)
    return (int(match.group(1)), int(match.group(2) or 0), name)


@dataclass
class PhaseDir:
    """A phase directory under .planning/phases/."""
    name: str
    path: Path

    @property
    def phase_number(self) -> str:
        match = PHASE_DIR_PATTERN.match(self.name)
        return match.group(1) if match else self.name

    @property
    def phase_name(self) -> Optional[str]:
        match = PHASE_DIR_PATTERN.match(self.name)
        return match.group(2) if match and match.group(2) else None


def list_phase_dir_names(phases_dir: Path) -> list[str]:
    if not phases_dir.is_dir():
        return []
    return [entry.name for entry in phases_dir.iterdir() if entry.is_dir()]


def find_phase_dir(phases_dir: Path, identifier) -> Optional[PhaseDir]:
    """Resolve a phase identifier to its directory.

    A directory matches when its name starts with the normalized id. Names
    that equal the id or continue with "-" are preferred over looser prefix
    matches (so "02" picks "02-auth" over "02.1-hotfix"); remaining ties are
    broken lexicographically and logged as a configuration problem.
    """
    normalized = normalize_phase_id(identifier)
    if not normalized:
        return None

    candidates = sorted(name for name in list_phase_dir_names(phases_dir) if name.startswith(normalized))
    if not candidates:
        return None

    exact = [name for name in candidates if name == normalized or name.startswith(normalized + "-")]
    if len(exact) > 1:
        log(f"WARNING: phase {normalized} matches {len(exact)} directories "
            f"({', '.join(exact)}); using {exact[0]}")
    chosen = (exact or candidates)[0]
    verbose_log(f"Phase {identifier} -> {chosen}", "PHASE")
    return PhaseDir(name=chosen, path=phases_dir / chosen)


@dataclass
class DecimalPhase:
    """Result of next_decimal_phase()."""
    found: bool
    base_phase: str
    next: str
    existing: list[str]


def next_decimal_phase(phases_dir: Path, base) -> DecimalPhase:
    """Compute the next free decimal phase after base ("02" -> "02.1", "02.2", ...)."""
    normalized = normalize_phase_id(base)
    names = list_phase_dir_names(phases_dir)
    base_exists = any(name == normalized or name.startswith(normalized + "-") for name in names)

    decimal_pattern = re.compile(rf"^{re.escape(normalized)}\.(\d+)")
    decimals: set[int] = set()
    for name in names:
        match = decimal_pattern.match(name)
        if match:
            decimals.add(int(match.group(1)))

    ordered = sorted(decimals)
    next_id = f"{normalized}.{ordered[-1] + 1}" if ordered else f"{normalized}.1"
    return DecimalPhase(
        found=base_exists,
        base_phase=normalized,
        next=next_id,
        existing=[f"{normalized}.{value}" for value in ordered],
    )


# ─── Plan Index ───────────────────────────────────────────────────────

PLAN_SUFFIX_PATTERN = re.compile(r"-PLAN\.md$", re.IGNORECASE)
SUMMARY_SUFFIX_PATTERN = re.compile(r"-SUMMARY\.md$", re.IGNORECASE)
PLAN_NUMBER_PATTERN = re.compile(r"-(\d{2})-PLAN\.md$", re.IGNORECASE)
TASK_OPEN_PATTERN = re.compile(r"<task\b")

DEFAULT_DOMAIN = "general"
RECOMMEND_TEAM_MIN_PLANS = 3
MULTI_DOMAIN_MIN_DOMAINS = 2


@dataclass
class PhaseInventory:
    """Plan and summary files of one phase directory, and how they pair up.

    A plan is complete exactly when a summary with the same id (filename
    minus the -PLAN.md / -SUMMARY.md suffix) sits next to it.
    """
    phase: PhaseDir
    plans: list[str]
    summaries: list[str]

    @property
    def plan_ids(self) -> list[str]:
        return [PLAN_SUFFIX_PATTERN.sub("", name) for name in self.plans]

    @property
    def summary_ids(self) -> list[str]:
        return [SUMMARY_SUFFIX_PATTERN.sub("", name) for name in self.summaries]

    @property
    def incomplete_plans(self) -> list[str]:
        done = set(self.summary_ids)
        return [plan_id for plan_id in self.plan_ids if plan_id not in done]

    @property
    def orphan_summaries(self) -> list[str]:
        planned = set(self.plan_ids)
        return [summary_id for summary_id in self.summary_ids if summary_id not in planned]

    @property
    def is_complete(self) -> bool:
        return not self.incomplete_plans


def inventory_phase(phase: PhaseDir) -> PhaseInventory:
    names = sorted(entry.name for entry in phase.path.iterdir() if entry.is_file())
    return PhaseInventory(
        phase=phase,
        plans=[name for name in names if PLAN_SUFFIX_PATTERN.search(name)],
        summaries=[name for name in names if SUMMARY_SUFFIX_PATTERN.search(name)],
    )


@dataclass
class PlanRecord:
    """Declared metadata of one plan document.

    wave and autonomous are taken as the author declared them; wave is never
    derived from depends_on.
    """
    file: str
    phase: Optional[str]
    plan: Optional[str]
    wave: Optional[int]
    type: Optional[str]
    domain: str
    depends_on: list[str]
    files_modified: list[str]
    autonomous: bool
    objective: Optional[str]
    task_count: int
    completed: bool
    must_haves: dict = field(default_factory=dict)

    @classmethod
    def from_document(cls, filename: str, content: str, completed: bool) -> "PlanRecord":
        fm = extract_frontmatter(content)
        must_haves = fm.get("must_haves") if isinstance(fm.get("must_haves"), dict) else {}
        domain = fm.get("domain")
        return cls(
            file=filename,
            phase=fm.get("phase"),
            plan=fm.get("plan"),
            wave=as_int(fm.get("wave")),
            type=fm.get("type"),
            domain=domain if isinstance(domain, str) and domain else DEFAULT_DOMAIN,
            depends_on=as_list(fm.get("depends_on")),
            files_modified=as_list(fm.get("files_modified")),
            autonomous=as_bool(fm.get("autonomous"), True),
            objective=fm.get("objective"),
            task_count=len(TASK_OPEN_PATTERN.findall(content)),
            completed=completed,
            must_haves={
                "truths": as_list(must_haves.get("truths")),
                "artifacts": as_list(must_haves.get("artifacts")),
                "key_links": as_list(must_haves.get("key_links")),
            },
        )


@dataclass
class PlanIndex:
    """All plans of a phase plus the cross-domain execution recommendation.

    recommend_team is advisory input for the external scheduler; nothing
    here schedules or runs plans.
    """
    phase: Optional[PhaseDir]
    plans: list[PlanRecord] = field(default_factory=list)

    @property
    def domains(self) -> list[str]:
        seen: list[str] = []
        for plan in self.plans:
            if plan.domain not in seen:
                seen.append(plan.domain)
        return seen

    @property
    def specialized_domains(self) -> list[str]:
        return [domain for domain in self.domains if domain != DEFAULT_DOMAIN]

    @property
    def multi_domain(self) -> bool:
        return len(self.specialized_domains) >= MULTI_DOMAIN_MIN_DOMAINS

    @property
    def recommend_team(self) -> bool:
        return len(self.plans) >= RECOMMEND_TEAM_MIN_PLANS and self.multi_domain

    @property
    def incomplete(self) -> list[str]:
        return [PLAN_SUFFIX_PATTERN.sub("", plan.file) for plan in self.plans if not plan.completed]

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.phase_number if self.phase else None,
            "directory": self.phase.name if self.phase else None,
            "plans": [vars(plan) for plan in self.plans],
            "count": len(self.plans),
            "domains": self.domains,
            "domain_count": len(self.specialized_domains),
            "multi_domain": self.multi_domain,
            "recommend_team": self.recommend_team,
            "incomplete": self.incomplete,
        }


def build_plan_index(phases_dir: Path, identifier) -> PlanIndex:
    """Index the plans of one phase; an unknown phase yields an empty index."""
    phase = find_phase_dir(phases_dir, identifier)
    if phase is None:
        return PlanIndex(phase=None)

    inventory = inventory_phase(phase)
    completed_ids = set(inventory.summary_ids)
    plans = []
    for filename in inventory.plans:
        content = read_document(phase.path / filename) or ""
        plan_id = PLAN_SUFFIX_PATTERN.sub("", filename)
        plans.append(PlanRecord.from_document(filename, content, plan_id in completed_ids))
    return PlanIndex(phase=phase, plans=plans)


def list_phases(phases_dir: Path, file_type: Optional[str] = None,
                identifier: Optional[str] = None) -> dict:
    """List phase directories in numeric order, or their plan/summary files.

    file_type is "plans", "summaries", or any other value for all files.
    """
    names = sorted(list_phase_dir_names(phases_dir), key=phase_sort_key)
    if identifier is not None:
        match = find_phase_dir(phases_dir, identifier)
        names = [match.name] if match else []

    if not file_type:
        return {"directories": names, "count": len(names)}

    files: list[str] = []
    for name in names:
        entries = sorted(entry.name for entry in (phases_dir / name).iterdir() if entry.is_file())
        if file_type == "plans":
            entries = [entry for entry in entries if PLAN_SUFFIX_PATTERN.search(entry)]
        elif file_type == "summaries":
            entries = [entry for entry in entries if SUMMARY_SUFFIX_PATTERN.search(entry)]
        files.extend(entries)
    return {"files": files, "count": len(files)}


def phase_progress(phases_dir: Path) -> dict:
    """Plan/summary counts per phase directory and overall completion percent."""
    phases = []
    total_plans = 0
    total_summaries = 0
    for name in sorted(list_phase_dir_names(phases_dir), key=phase_sort_key):
        phase = PhaseDir(name=name, path=phases_dir / name)
        inventory = inventory_phase(phase)
        plans = len(inventory.plans)
        summaries = len(inventory.summaries)
        total_plans += plans
        total_summaries += summaries

        if plans == 0:
            status = "Pending"
        elif summaries >= plans:
            status = "Complete"
        elif summaries > 0:
            status = "In Progress"
        else:
            status = "Planned"

        phases.append({
            "number": phase.phase_number,
            "name": (phase.phase_name or "").replace("-", " "),
            "plans": plans,
            "summaries": summaries,
            "status": status,
        })

    percent = round(total_summaries / total_plans * 100) if total_plans else 0
    return {
        "phases": phases,
        "total_plans": total_plans,
        "total_summaries": total_summaries,
        "percent": percent,
    }


def render_progress_bar(percent: int, width: int = 10) -> str:
    filled = round(percent / 100 * width)
    return "█" * filled + "░" * (width - filled)


# ─── Tracking Document ────────────────────────────────────────────────
#
# STATE.md is parsed into one node per line: headings, inline fields
# ("**Name:** value", optionally as a bullet), and plain text. Lines inside
# fenced code blocks are always plain text, so field lookalikes there are
# never patched. Unchanged nodes render back to their exact original line.

FIELD_LINE_PATTERN = re.compile(
    r"^(?P<lead>[ \t]*(?:[-*][ \t]+)?)\*\*(?P<name>[^*\n]+?):\*\*(?P<gap>[ \t]*)(?P<value>.*)$"
)
HEADING_LINE_PATTERN = re.compile(r"^(?P<marks>#{1,6})[ \t]+(?P<title>.*?)[ \t]*$")
FENCE_LINE_PATTERN = re.compile(r"^[ \t]*(```|~~~)")
TABLE_SEPARATOR_PATTERN = re.compile(r"^[ \t]*\|?[ \t]*:?-+:?[ \t]*(\|[ \t]*:?-+:?[ \t]*)*\|?[ \t]*$")
PLACEHOLDER_PATTERN = re.compile(r"^_?(?:none|none yet|nothing yet|no \w+ yet)\.?_?$", re.IGNORECASE)

DECISIONS_SECTION = re.compile(r"decisions|decisions made|accumulated.*decisions", re.IGNORECASE)
BLOCKERS_SECTION = re.compile(r"blockers|blockers/concerns|concerns", re.IGNORECASE)
METRICS_SECTION = re.compile(r"performance metrics", re.IGNORECASE)


@dataclass
class TextLine:
    text: str

    def render(self) -> str:
        return self.text


@dataclass
class FieldLine:
    """An inline "**Name:** value" field."""
    lead: str
    name: str
    gap: str
    value: str

    def render(self) -> str:
        return f"{self.lead}**{self.name}:**{self.gap}{self.value}"


@dataclass
class HeadingLine:
    level: int
    title: str
    text: str

    def render(self) -> str:
        return self.text


DocumentLine = Union[TextLine, FieldLine, HeadingLine]


def _parse_line(text: str) -> DocumentLine:
    heading = HEADING_LINE_PATTERN.match(text)
    if heading:
        return HeadingLine(level=len(heading.group("marks")), title=heading.group("title"), text=text)
    field_match = FIELD_LINE_PATTERN.match(text)
    if field_match:
        return FieldLine(
            lead=field_match.group("lead"),
            name=field_match.group("name"),
            gap=field_match.group("gap"),
            value=field_match.group("value"),
        )
    return TextLine(text)


def _is_placeholder(text: str) -> bool:
    return bool(PLACEHOLDER_PATTERN.match(text.strip()))


def _is_placeholder_row(row: str) -> bool:
    """A table row holding only dashes, blanks, or "None yet"."""
    cells = [cell.strip() for cell in row.strip().strip("|").split("|")]
    return all(not cell or cell in ("-", "—") or _is_placeholder(cell) for cell in cells)


def _trim_blank_edges(lines: list[str]) -> list[str]:
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return lines[start:end]


@dataclass
class TrackingDocument:
    """Line-level model of a tracking document such as STATE.md."""
    lines: list[DocumentLine]
    trailing_newline: bool = True

    @classmethod
    def parse(cls, text: str) -> "TrackingDocument":
        trailing_newline = text.endswith("\n")
        raw_lines = (text[:-1] if trailing_newline else text).split("\n")
        lines: list[DocumentLine] = []
        in_fence = False
        for raw in raw_lines:
            if FENCE_LINE_PATTERN.match(raw):
                in_fence = not in_fence
                lines.append(TextLine(raw))
            elif in_fence:
                lines.append(TextLine(raw))
            else:
                lines.append(_parse_line(raw))
        return cls(lines=lines, trailing_newline=trailing_newline)

    def render(self) -> str:
        text = "\n".join(line.render() for line in self.lines)
        return text + "\n" if self.trailing_newline else text

    # --- inline fields ---

    def find_field(self, name: str) -> Optional[FieldLine]:
        wanted = name.strip().lower()
        for line in self.lines:
            if isinstance(line, FieldLine) and line.name.strip().lower() == wanted:
                return line
        return None

    def fields(self) -> dict[str, str]:
        found: dict[str, str] = {}
        for line in self.lines:
            if isinstance(line, FieldLine):
                found.setdefault(line.name.strip(), line.value.strip())
        return found

    def set_field(self, name: str, value: str) -> bool:
        """Replace the value of the first field called name; False if there is none."""
        target = self.find_field(name)
        if target is None:
            return False
        target.gap = target.gap or " "
        target.value = value
        return True

    # --- sections ---

    def find_section(self, title: re.Pattern) -> Optional[tuple[int, int]]:
        """Return (heading index, end index) of the first heading whose title matches.

        The section runs until the next heading of the same or a higher level.
        """
        for index, line in enumerate(self.lines):
            if isinstance(line, HeadingLine) and title.fullmatch(line.title.strip()):
                end = index + 1
                while end < len(self.lines):
                    candidate = self.lines[end]
                    if isinstance(candidate, HeadingLine) and candidate.level <= line.level:
                        break
                    end += 1
                return index, end
        return None

    def section_text(self, title: re.Pattern) -> Optional[str]:
        span = self.find_section(title)
        if span is None:
            return None
        start, end = span
        return "\n".join(line.render() for line in self.lines[start + 1:end])

    def _replace_body(self, start: int, end: int, body: list[str]) -> None:
        if end < len(self.lines):
            body = body + [""]
        else:
            self.trailing_newline = True
        self.lines[start + 1:end] = [_parse_line(text) for text in body]

    def append_to_section(self, title: re.Pattern, entry: str) -> bool:
        """Append a bullet line to a running-list section.

        Placeholder lines ("None", "None yet.") are dropped, blank edges are
        trimmed, and one blank line is kept before the next heading.
        """
        span = self.find_section(title)
        if span is None:
            return False
        start, end = span
        body = [line.render() for line in self.lines[start + 1:end]]
        leading_blank = [""] if body and not body[0].strip() else []
        kept = _trim_blank_edges([text for text in body if not _is_placeholder(text)])
        self._replace_body(start, end, leading_blank + kept + [entry])
        return True

    def remove_from_section(self, title: re.Pattern, text: str) -> Optional[int]:
        """Drop bullet lines containing text (case-insensitive).

        Returns how many bullets were removed, or None if the section is
        missing. A section left without bullets gets the "None" placeholder.
        """
        span = self.find_section(title)
        if span is None:
            return None
        start, end = span
        body = [line.render() for line in self.lines[start + 1:end]]
        needle = text.lower()
        kept = [line for line in body if not (line.lstrip().startswith("- ") and needle in line.lower())]
        removed = len(body) - len(kept)
        if not any(line.lstrip().startswith("- ") for line in kept):
            leading_blank = [""] if body and not body[0].strip() else []
            kept = leading_blank + ["None"]
        else:
            kept = _trim_blank_edges(kept)
            if body and not body[0].strip():
                kept = [""] + kept
        self._replace_body(start, end, kept)
        return removed

    def append_table_row(self, title: re.Pattern, row: str) -> bool:
        """Add a row to the first table of a section.

        The row goes right after the last real row, or after the separator
        when the table is empty. Placeholder rows and a placeholder line
        directly under the table are removed.
        """
        span = self.find_section(title)
        if span is None:
            return False
        start, end = span

        separator = None
        for index in range(start + 2, end):
            previous = self.lines[index - 1].render()
            if previous.lstrip().startswith("|") and TABLE_SEPARATOR_PATTERN.match(self.lines[index].render()):
                separator = index
                break
        if separator is None:
            return False

        index = separator + 1
        while index < end and self.lines[index].render().lstrip().startswith("|"):
            if _is_placeholder_row(self.lines[index].render()):
                del self.lines[index]
                end -= 1
                continue
            index += 1
        following = index
        while following < end and not self.lines[following].render().strip():
            following += 1
        if following < end and _is_placeholder(self.lines[following].render()):
            del self.lines[index:following + 1]
            end -= following + 1 - index

        self.lines.insert(index, TextLine(row))
        return True


def get_document_entry(content: str, name: str) -> Optional[str]:
    """Look up name as an inline field first, then as a section heading."""
    document = TrackingDocument.parse(content)
    target = document.find_field(name)
    if target is not None:
        return target.value.strip()
    section = document.section_text(re.compile(re.escape(name.strip()), re.IGNORECASE))
    return section.strip() if section is not None else None


def extract_field(content: str, name: str) -> Optional[str]:
    target = TrackingDocument.parse(content).find_field(name)
    return target.value.strip() if target is not None else None


def replace_field(content: str, name: str, value: str) -> Optional[str]:
    """Return content with field name set to value, or None if the field is absent.

    None is a soft failure: callers log it and carry on with the document
    untouched.
    """
    document = TrackingDocument.parse(content)
    if not document.set_field(name, value):
        return None
    return document.render()


@dataclass
class PatchResult:
    """Outcome of patch_fields(); content is only worth writing if updated is non-empty."""
    content: str
    updated: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def patch_fields(content: str, patches: dict) -> PatchResult:
    """Apply several field replacements in order, keeping partial success."""
    result = PatchResult(content=content)
    for name, value in patches.items():
        patched = replace_field(result.content, name, str(value))
        if patched is None:
            log(f"WARNING: field '{name}' not found, skipping")
            result.failed.append(name)
        else:
            result.content = patched
            result.updated.append(name)
    return result


def append_section_entry(content: str, title: re.Pattern, entry: str) -> Optional[str]:
    document = TrackingDocument.parse(content)
    if not document.append_to_section(title, entry):
        return None
    return document.render()


def remove_section_entries(content: str, title: re.Pattern, text: str) -> Optional[str]:
    document = TrackingDocument.parse(content)
    if document.remove_from_section(title, text) is None:
        return None
    return document.render()


def append_table_row(content: str, title: re.Pattern, row: str) -> Optional[str]:
    document = TrackingDocument.parse(content)
    if not document.append_table_row(title, row):
        return None
    return document.render()


# ─── Roadmap ──────────────────────────────────────────────────────────

ROADMAP_PHASE_PATTERN = re.compile(r"^#{2,4}[ \t]*Phase[ \t]+(\d+(?:\.\d+)?)[ \t]*:", re.IGNORECASE | re.MULTILINE)


def roadmap_phase_numbers(content: str) -> list[str]:
    """Phase numbers declared by "### Phase N:" headings, in document order."""
    return ROADMAP_PHASE_PATTERN.findall(content)


def mark_roadmap_phase_complete(content: str, identifier) -> Optional[str]:
    """Append a check mark to the phase heading; None if the heading is missing."""
    number = re.escape(display_phase_number(identifier))
    heading = re.compile(rf"^(#{{2,4}}[ \t]*Phase[ \t]+{number}[ \t]*:[^\n]*)$", re.IGNORECASE | re.MULTILINE)
    match = heading.search(content)
    if not match:
        return None
    if "✅" in match.group(1):
        return content
    return content[:match.end()] + " ✅" + content[match.end():]


ROADMAP_HEADING_PATTERN = re.compile(
    r"^(?P<marks>#{2,4})[ \t]*Phase[ \t]+(?P<number>\d+(?:\.\d+)?)[ \t]*:[ \t]*(?P<title>[^\n]*?)[ \t]*$",
    re.IGNORECASE | re.MULTILINE,
)
ROADMAP_GOAL_PATTERN = re.compile(r"\*\*Goal:\*\*[ \t]*([^\n]+)", re.IGNORECASE)
ROADMAP_DEPENDS_PATTERN = re.compile(r"\*\*Depends on:\*\*[ \t]*([^\n]+)", re.IGNORECASE)
ROADMAP_MILESTONE_PATTERN = re.compile(r"^##[ \t]+(?P<heading>[^\n]*?\bv(?P<version>\d+\.\d+)[^(\n]*)", re.MULTILINE)
INSERTED_MARKER_PATTERN = re.compile(r"\(INSERTED\)", re.IGNORECASE)
CONTEXT_SUFFIX_PATTERN = re.compile(r"(?:^|-)CONTEXT\.md$", re.IGNORECASE)
RESEARCH_SUFFIX_PATTERN = re.compile(r"(?:^|-)RESEARCH\.md$", re.IGNORECASE)

# disk_status values that mean "not started yet", for picking the next phase
UNSTARTED_STATUSES = ("empty", "no_directory", "discussed", "researched")


@dataclass
class RoadmapPhase:
    """One "### Phase N: Name" section of ROADMAP.md."""
    number: str
    name: str
    goal: Optional[str]
    depends_on: Optional[str]
    section: str


def roadmap_phases(content: str) -> list[RoadmapPhase]:
    """Every phase section in document order.

    A section runs from its heading to the next heading of the same or a
    higher level.
    """
    phases = []
    for match in ROADMAP_HEADING_PATTERN.finditer(content):
        level = len(match.group("marks"))
        rest = content[match.end():]
        next_heading = re.search(rf"^#{{1,{level}}}[ \t]", rest, re.MULTILINE)
        end = match.end() + next_heading.start() if next_heading else len(content)
        section = content[match.start():end].strip()

        goal = ROADMAP_GOAL_PATTERN.search(section)
        depends = ROADMAP_DEPENDS_PATTERN.search(section)
        phases.append(RoadmapPhase(
            number=match.group("number"),
            name=INSERTED_MARKER_PATTERN.sub("", match.group("title")).replace("✅", "").strip(),
            goal=goal.group(1).strip() if goal else None,
            depends_on=depends.group(1).strip() if depends else None,
            section=section,
        ))
    return phases


def find_roadmap_phase(content: str, identifier) -> Optional[RoadmapPhase]:
    """The roadmap section of a phase; "2" and "02" name the same phase."""
    wanted = normalize_phase_id(identifier)
    for phase in roadmap_phases(content):
        if normalize_phase_id(phase.number) == wanted:
            return phase
    return None


def _roadmap_checkbox(content: str, number: str) -> bool:
    pattern = re.compile(
        rf"^[ \t]*-[ \t]*\[([xX ])\][^\n]*Phase[ \t]+{re.escape(number)}(?!\.?\d)", re.MULTILINE
    )
    match = pattern.search(content)
    return bool(match) and match.group(1) in "xX"


def phase_disk_status(phases_dir: Path, identifier) -> dict:
    """On-disk progress of a phase directory.

    Only a directory named exactly after the phase counts, so "02" never
    reports the files of "02.1-hotfix".
    """
    normalized = normalize_phase_id(identifier)
    names = sorted(name for name in list_phase_dir_names(phases_dir)
                   if name == normalized or name.startswith(normalized + "-"))
    status = {
        "directory": names[0] if names else None,
        "plan_count": 0,
        "summary_count": 0,
        "has_context": False,
        "has_research": False,
        "disk_status": "no_directory",
    }
    if not names:
        return status

    files = [entry.name for entry in (phases_dir / names[0]).iterdir() if entry.is_file()]
    plans = sum(1 for name in files if PLAN_SUFFIX_PATTERN.search(name) or name.upper() == "PLAN.MD")
    summaries = sum(1 for name in files if SUMMARY_SUFFIX_PATTERN.search(name) or name.upper() == "SUMMARY.MD")
    has_context = any(CONTEXT_SUFFIX_PATTERN.search(name) for name in files)
    has_research = any(RESEARCH_SUFFIX_PATTERN.search(name) for name in files)

    if plans and summaries >= plans:
        disk_status = "complete"
    elif summaries:
        disk_status = "partial"
    elif plans:
        disk_status = "planned"
    elif has_research:
        disk_status = "researched"
    elif has_context:
        disk_status = "discussed"
    else:
        disk_status = "empty"

    status.update(plan_count=plans, summary_count=summaries, has_context=has_context,
                  has_research=has_research, disk_status=disk_status)
    return status


def analyze_roadmap(content: str, phases_dir: Path) -> dict:
    """Join every roadmap phase with its on-disk status.

    current_phase is the first planned or partially executed phase;
    next_phase is the first one not started yet.
    """
    phases = []
    for phase in roadmap_phases(content):
        disk = phase_disk_status(phases_dir, phase.number)
        phases.append({
            "number": phase.number,
            "name": phase.name,
            "goal": phase.goal,
            "depends_on": phase.depends_on,
            "plan_count": disk["plan_count"],
            "summary_count": disk["summary_count"],
            "has_context": disk["has_context"],
            "has_research": disk["has_research"],
            "disk_status": disk["disk_status"],
            "roadmap_complete": _roadmap_checkbox(content, phase.number),
        })

    milestones = [
        {"heading": match.group("heading").strip(), "version": f"v{match.group('version')}"}
        for match in ROADMAP_MILESTONE_PATTERN.finditer(content)
    ]
    total_plans = sum(phase["plan_count"] for phase in phases)
    total_summaries = sum(phase["summary_count"] for phase in phases)
    current = next((p for p in phases if p["disk_status"] in ("planned", "partial")), None)
    upcoming = next((p for p in phases if p["disk_status"] in UNSTARTED_STATUSES), None)

    return {
        "milestones": milestones,
        "phases": phases,
        "phase_count": len(phases),
        "completed_phases": sum(1 for phase in phases if phase["disk_status"] == "complete"),
        "total_plans": total_plans,
        "total_summaries": total_summaries,
        "progress_percent": round(total_summaries / total_plans * 100) if total_plans else 0,
        "current_phase": current["number"] if current else None,
        "next_phase": upcoming["number"] if upcoming else None,
    }

# ─── Summary History ──────────────────────────────────────────────────


def _unique(values: list) -> list:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def _frontmatter_items(value) -> list:
    if isinstance(value, list):
        return value
    if value in (None, "", {}):
        return []
    return [value]


def history_digest(phases_dir: Path) -> dict:
    """Roll up what every SUMMARY.md declares it provides, affects and decided.

    Per phase: provides (from dependency-graph.provides or a top-level
    provides), affects and patterns-established. Across phases: every
    key-decisions entry and the names under tech-stack.added.
    """
    digest = {"phases": {}, "decisions": [], "tech_stack": []}
    for name in sorted(list_phase_dir_names(phases_dir), key=phase_sort_key):
        phase = PhaseDir(name=name, path=phases_dir / name)
        for filename in inventory_phase(phase).summaries:
            content = read_document(phase.path / filename)
            if content is None:
                continue
            fm = extract_frontmatter(content)

            number = _scalar_text(fm["phase"]) if fm.get("phase") not in (None, "", {}) else phase.phase_number
            entry = digest["phases"].setdefault(number, {
                "name": (phase.phase_name or "Unknown").replace("-", " "),
                "provides": [],
                "affects": [],
                "patterns": [],
            })

            graph = fm.get("dependency-graph") if isinstance(fm.get("dependency-graph"), dict) else {}
            entry["provides"].extend(_frontmatter_items(graph.get("provides") or fm.get("provides")))
            entry["affects"].extend(_frontmatter_items(graph.get("affects")))
            entry["patterns"].extend(_frontmatter_items(fm.get("patterns-established")))
            for decision in _frontmatter_items(fm.get("key-decisions")):
                digest["decisions"].append({"phase": number, "decision": decision})

            tech = fm.get("tech-stack")
            if isinstance(tech, dict):
                for item in _frontmatter_items(tech.get("added")):
                    digest["tech_stack"].append(item.get("name") if isinstance(item, dict) else item)

    for entry in digest["phases"].values():
        for key in ("provides", "affects", "patterns"):
            entry[key] = _unique(entry[key])
    digest["tech_stack"] = _unique([item for item in digest["tech_stack"] if item])
    verbose_log(f"History digest covers {len(digest['phases'])} phase(s)", "HISTORY")
    return digest


# ─── Git ──────────────────────────────────────────────────────────────


@dataclass
class GitResult:
    """Exit code and trimmed output of one git invocation."""
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def run_git(root: Path, args: list[str], timeout: int = DEFAULT_GIT_TIMEOUT_SECONDS) -> GitResult:
    """Run git in root with a bounded timeout.

    Failures to launch and timeouts come back as a non-zero GitResult; no
    retries are attempted.
    """
    verbose_log(f"git {' '.join(args)}", "GIT")
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=str(root),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        log(f"WARNING: git {' '.join(args)} timed out after {timeout}s")
        return GitResult(exit_code=124, stdout="", stderr=f"timed out after {timeout}s")
    except OSError as e:
        log(f"WARNING: could not run git: {e}")
        return GitResult(exit_code=127, stdout="", stderr=str(e))
    return GitResult(
        exit_code=result.returncode,
        stdout=(result.stdout or "").strip(),
        stderr=(result.stderr or "").strip(),
    )


def is_commit(root: Path, ref: str, timeout: int = DEFAULT_GIT_TIMEOUT_SECONDS) -> bool:
    """True only if ref names a commit object (not a blob, tree, or tag)."""
    result = run_git(root, ["cat-file", "-t", ref], timeout=timeout)
    return result.ok and result.stdout == "commit"


def is_git_ignored(root: Path, path: str, timeout: int = DEFAULT_GIT_TIMEOUT_SECONDS) -> bool:
    return run_git(root, ["check-ignore", "-q", "--", path], timeout=timeout).ok


@dataclass
class CommitOutcome:
    committed: bool
    hash: Optional[str]
    reason: Optional[str] = None
    message: Optional[str] = None


def commit_planning_docs(config: PlanningConfig, message: Optional[str],
                         files: Optional[list[str]] = None, amend: bool = False) -> CommitOutcome:
    """Stage planning documents and commit them.

    Skipped (not failed) when commit_docs is off, when the planning directory
    is git-ignored, or when nothing is staged.
    """
    timeout = config.git_timeout
    if not config.commit_docs:
        log("Commit skipped: commit_docs is false")
        return CommitOutcome(committed=False, hash=None, reason="skipped_commit_docs_false")

    if is_git_ignored(config.root, PLANNING_DIR_NAME, timeout=timeout):
        log(f"Commit skipped: {PLANNING_DIR_NAME} is git-ignored")
        return CommitOutcome(committed=False, hash=None, reason="skipped_gitignored")

    for path in files or [f"{PLANNING_DIR_NAME}/"]:
        staged = run_git(config.root, ["add", path], timeout=timeout)
        if not staged.ok:
            log(f"WARNING: git add {path} failed: {staged.stderr or staged.stdout}")

    if run_git(config.root, ["diff", "--cached", "--quiet"], timeout=timeout).ok:
        return CommitOutcome(committed=False, hash=None, reason="nothing_to_commit")

    commit_args = ["commit", "--amend", "-m", message or ""] if amend else ["commit", "-m", message or ""]
    result = run_git(config.root, commit_args, timeout=timeout)
    if not result.ok:
        return CommitOutcome(committed=False, hash=None, reason=result.stderr or result.stdout)

    short_hash = run_git(config.root, ["rev-parse", "--short", "HEAD"], timeout=timeout).stdout
    return CommitOutcome(committed=True, hash=short_hash, message=message)
