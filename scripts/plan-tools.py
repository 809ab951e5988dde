#!/usr/bin/env python3
"""
Plan Tools: command-line front end for planning-document maintenance.

Each invocation resolves the project root, runs one operation against the
.planning/ directory, and prints exactly one JSON document (or a bare value
with --raw) on stdout. Diagnostics go to stderr.

Usage:
    python scripts/plan-tools.py find-phase 2
    python scripts/plan-tools.py phase-plan-index 02 --raw
    python scripts/plan-tools.py frontmatter get .planning/phases/02-auth/02-01-PLAN.md --field wave
    python scripts/plan-tools.py state patch --Status "In progress" --"Last Activity" 2026-01-02
    python scripts/plan-tools.py validate consistency

Copyright (c) 2025 Martin Bechard [martin.bechard@DevConsult.ca]
"""

import argparse
import importlib.util
import json
import os
import re
import shutil
import sys
from datetime import datetime, timezone
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
verify = _load_script("plan_verify", "plan-verify.py")

# Required frontmatter fields per document kind, for "frontmatter validate"
FRONTMATTER_SCHEMAS = {
    "plan": ("phase", "plan", "type"),
    "summary": ("phase", "plan", "subsystem"),
    "verification": ("phase",),
}

RAW_TRUE_FALSE = {True: "true", False: "false"}


class UsageError(Exception):
    """Invalid command-line usage; reported as "Error: ..." with exit status 1."""


def emit(result, raw: bool = False, raw_value=None) -> None:
    """Print the command result: a bare value in raw mode, JSON otherwise."""
    if raw and raw_value is not None:
        sys.stdout.write(str(raw_value))
    else:
        sys.stdout.write(json.dumps(result, indent=2, ensure_ascii=False, default=str) + "\n")
    sys.stdout.flush()


def _path_arg(config, path: str) -> Path:
    candidate = Path(path)
    return candidate if candidate.is_absolute() else config.root / candidate


def _today() -> str:
    return datetime.now().strftime("%Y-%m-%d")


# ─── Frontmatter commands ─────────────────────────────────────────────


def cmd_frontmatter_get(config, args) -> tuple:
    content = docs.read_document(_path_arg(config, args.file))
    if content is None:
        return {"error": "File not found", "path": args.file}, None

    tree = docs.extract_frontmatter(content)
    if not args.field:
        return tree, None
    if args.field not in tree:
        return {"error": "Field not found", "field": args.field}, None
    value = tree[args.field]
    raw_value = value if isinstance(value, str) else json.dumps(value)
    return {args.field: value}, raw_value


def cmd_frontmatter_set(config, args) -> tuple:
    path = _path_arg(config, args.file)
    value = docs.coerce_cli_value(args.value)

    def transform(content: str) -> str:
        tree = docs.extract_frontmatter(content)
        tree[args.field] = value
        return docs.splice_frontmatter(content, tree)

    try:
        docs.update_document(path, transform)
    except FileNotFoundError:
        return {"updated": False, "error": "File not found", "path": args.file}, "false"
    return {"updated": True, "field": args.field, "value": value}, "true"


def cmd_frontmatter_merge(config, args) -> tuple:
    path = _path_arg(config, args.file)
    try:
        data = json.loads(args.data)
    except json.JSONDecodeError as e:
        raise UsageError(f"Invalid JSON for --data: {e}")
    if not isinstance(data, dict):
        raise UsageError("--data must be a JSON object")

    def transform(content: str) -> str:
        tree = docs.extract_frontmatter(content)
        tree.update(data)
        return docs.splice_frontmatter(content, tree)

    try:
        docs.update_document(path, transform)
    except FileNotFoundError:
        return {"merged": False, "error": "File not found", "path": args.file}, "false"
    return {"merged": True, "fields": list(data.keys())}, "true"


def cmd_frontmatter_validate(config, args) -> tuple:
    content = docs.read_document(_path_arg(config, args.file))
    if content is None:
        return {"valid": False, "error": "File not found", "path": args.file}, "invalid"

    tree = docs.extract_frontmatter(content)
    required = FRONTMATTER_SCHEMAS[args.schema]
    missing = [name for name in required if name not in tree]
    present = [name for name in required if name in tree]
    result = {"valid": not missing, "missing": missing, "present": present, "schema": args.schema}
    return result, "valid" if not missing else "invalid"


# ─── Phase commands ───────────────────────────────────────────────────


def cmd_find_phase(config, args) -> tuple:
    phase = docs.find_phase_dir(config.phases_dir, args.phase)
    if phase is None:
        return {"found": False, "directory": None, "phase_number": None, "phase_name": None,
                "plans": [], "summaries": []}, ""

    inventory = docs.inventory_phase(phase)
    directory = str(phase.path.relative_to(config.root))
    return {
        "found": True,
        "directory": directory,
        "phase_number": phase.phase_number,
        "phase_name": phase.phase_name,
        "plans": inventory.plans,
        "summaries": inventory.summaries,
    }, directory


def cmd_phase_plan_index(config, args) -> tuple:
    index = docs.build_plan_index(config.phases_dir, args.phase)
    result = index.to_dict()
    result["phase"] = docs.normalize_phase_id(args.phase)
    return result, RAW_TRUE_FALSE[index.recommend_team]


def cmd_phases_list(config, args) -> tuple:
    result = docs.list_phases(config.phases_dir, file_type=args.type, identifier=args.phase)
    entries = result.get("directories", result.get("files", []))
    return result, "\n".join(entries)


def cmd_phase_next_decimal(config, args) -> tuple:
    outcome = docs.next_decimal_phase(config.phases_dir, args.phase)
    return vars(outcome), outcome.next


def cmd_phase_add(config, args) -> tuple:
    description = " ".join(args.description).strip()
    if not description:
        raise UsageError("phase add requires a description")

    highest = 0
    for name in docs.list_phase_dir_names(config.phases_dir):
        match = re.match(r"^(\d+)", name)
        if match:
            highest = max(highest, int(match.group(1)))
    number = str(highest + 1).zfill(2)
    return _create_phase(config, number, description), number


def cmd_phase_insert(config, args) -> tuple:
    description = " ".join(args.description).strip()
    if not description:
        raise UsageError("phase insert requires a description")

    outcome = docs.next_decimal_phase(config.phases_dir, args.after)
    if not outcome.found:
        raise UsageError(f"Phase {outcome.base_phase} not found")
    result = _create_phase(config, outcome.next, description)
    result["after"] = outcome.base_phase
    return result, outcome.next


def _create_phase(config, number: str, description: str) -> dict:
    slug = docs.slugify(description)
    name = f"{number}-{slug}" if slug else number
    directory = config.phases_dir / name
    directory.mkdir(parents=True, exist_ok=True)
    docs.log(f"Created phase directory {name}")

    heading = f"\n### Phase {docs.display_phase_number(number)}: {description}\n\n**Goal:** TBD\n"
    roadmap_updated = False
    try:
        roadmap_updated = docs.update_document(config.roadmap_path, lambda content: content.rstrip("\n") + "\n" + heading)
    except FileNotFoundError:
        docs.log("WARNING: ROADMAP.md not found, phase heading not added")
    return {
        "phase": number,
        "slug": slug,
        "directory": str(directory.relative_to(config.root)),
        "roadmap_updated": roadmap_updated,
    }


def cmd_phase_remove(config, args) -> tuple:
    phase = docs.find_phase_dir(config.phases_dir, args.phase)
    if phase is None:
        raise UsageError(f"Phase {args.phase} not found")

    documents = sorted(entry.name for entry in phase.path.glob("*.md"))
    if documents and not args.force:
        raise UsageError(
            f"Phase {phase.phase_number} contains {len(documents)} document(s); use --force to remove it"
        )

    shutil.rmtree(phase.path)
    docs.log(f"Removed phase directory {phase.name}")
    return {"removed": True, "directory": phase.name, "phase": phase.phase_number}, "true"


def cmd_phase_complete(config, args) -> tuple:
    phase = docs.find_phase_dir(config.phases_dir, args.phase)
    if phase is None:
        raise UsageError(f"Phase {args.phase} not found")

    roadmap_updated = False
    try:
        roadmap_updated = docs.update_document(
            config.roadmap_path, lambda content: docs.mark_roadmap_phase_complete(content, phase.phase_number)
        )
    except FileNotFoundError:
        docs.log("WARNING: ROADMAP.md not found, nothing to mark")

    inventory = docs.inventory_phase(phase)
    return {
        "completed": True,
        "phase": phase.phase_number,
        "roadmap_updated": roadmap_updated,
        "incomplete_plans": inventory.incomplete_plans,
    }, "true"


# ─── Verification commands ────────────────────────────────────────────


def _missing(args_file: str) -> dict:
    return {"error": "File not found", "path": args_file}


def cmd_verify_plan_structure(config, args) -> tuple:
    result = verify.verify_plan_structure(_path_arg(config, args.file))
    if result is None:
        return _missing(args.file), "invalid"
    return verify.to_output(result), "valid" if result.valid else "invalid"


def cmd_verify_phase_completeness(config, args) -> tuple:
    result = verify.verify_phase_completeness(config.phases_dir, args.phase)
    if result is None:
        return {"error": "Phase not found", "phase": args.phase}, "incomplete"
    return verify.to_output(result), "complete" if result.complete else "incomplete"


def cmd_verify_references(config, args) -> tuple:
    result = verify.verify_references(_path_arg(config, args.file), config.root)
    if result is None:
        return _missing(args.file), "invalid"
    return verify.to_output(result), "valid" if result.valid else "invalid"


def cmd_verify_commits(config, args) -> tuple:
    if not args.hashes:
        raise UsageError("verify commits requires at least one hash")
    result = verify.verify_commits(config.root, args.hashes, timeout=config.git_timeout)
    return verify.to_output(result), "valid" if result.all_valid else "invalid"


def cmd_verify_artifacts(config, args) -> tuple:
    result = verify.verify_artifacts(_path_arg(config, args.file), config.root)
    if result is None:
        return _missing(args.file), "invalid"
    return verify.to_output(result), "valid" if result.all_passed else "invalid"


def cmd_verify_key_links(config, args) -> tuple:
    result = verify.verify_key_links(_path_arg(config, args.file), config.root)
    if result is None:
        return _missing(args.file), "invalid"
    return verify.to_output(result), "valid" if result.all_verified else "invalid"


def cmd_verify_summary(config, args) -> tuple:
    result = verify.verify_summary(_path_arg(config, args.file), config.root,
                                   check_count=args.check_count, timeout=config.git_timeout)
    return verify.to_output(result), "passed" if result.passed else "failed"


def cmd_validate_consistency(config, args) -> tuple:
    result = verify.validate_consistency(config)
    return verify.to_output(result), "passed" if result.passed else "failed"


# ─── State commands ───────────────────────────────────────────────────


def _state_missing() -> dict:
    return {"error": "STATE.md not found"}


def cmd_state_load(config, args) -> tuple:
    content = docs.read_document(config.state_path)
    result = {
        "config": config.preferences,
        "state_exists": content is not None,
        "roadmap_exists": config.roadmap_path.is_file(),
        "config_exists": config.config_path.is_file(),
        "state_raw": content or "",
    }
    raw_lines = [f"{key}={value}" for key, value in config.preferences.items()]
    raw_lines += [f"{key}={RAW_TRUE_FALSE[result[key]]}" for key in ("state_exists", "roadmap_exists", "config_exists")]
    return result, "\n".join(raw_lines)


def cmd_state_get(config, args) -> tuple:
    content = docs.read_document(config.state_path)
    if content is None:
        return _state_missing(), None
    if not args.name:
        return {"content": content}, content

    value = docs.get_document_entry(content, args.name)
    if value is None:
        return {"error": f"Section or field \"{args.name}\" not found"}, None
    return {args.name: value}, value


def _patch_state(config, patches: dict) -> dict:
    outcome = {}

    def transform(content: str) -> Optional[str]:
        result = docs.patch_fields(content, patches)
        outcome["result"] = result
        return result.content if result.updated else None

    try:
        docs.update_document(config.state_path, transform)
    except FileNotFoundError:
        return {**_state_missing(), "updated": [], "failed": list(patches.keys())}
    result = outcome["result"]
    return {"updated": result.updated, "failed": result.failed}


def cmd_state_update(config, args) -> tuple:
    result = _patch_state(config, {args.field: args.value})
    updated = bool(result.get("updated"))
    response = {"updated": updated}
    if not updated:
        response["reason"] = result.get("error") or f"Field \"{args.field}\" not found in STATE.md"
    return response, RAW_TRUE_FALSE[updated]


def parse_patch_pairs(tokens: list[str]) -> dict:
    """Turn ["--Status", "Done", "--Plan=3"] into {"Status": "Done", "Plan": "3"}."""
    pairs: dict = {}
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if not token.startswith("--") or len(token) <= 2:
            raise UsageError(f"Expected --Field value, got: {token}")
        name = token[2:]
        if "=" in name:
            name, value = name.split("=", 1)
            index += 1
        elif index + 1 < len(tokens):
            value = tokens[index + 1]
            index += 2
        else:
            raise UsageError(f"Missing value for --{name}")
        pairs[name] = value
    if not pairs:
        raise UsageError("state patch requires at least one --Field value pair")
    return pairs


def cmd_state_patch(config, args) -> tuple:
    result = _patch_state(config, parse_patch_pairs(args.extras))
    return result, RAW_TRUE_FALSE[bool(result["updated"])]


def cmd_state_snapshot(config, args) -> tuple:
    content = docs.read_document(config.state_path)
    if content is None:
        return _state_missing(), None

    fields = docs.TrackingDocument.parse(content).fields()
    snapshot = {
        "current_phase": fields.get("Current Phase"),
        "current_phase_name": fields.get("Current Phase Name"),
        "current_plan": docs.as_int(fields.get("Current Plan")),
        "total_plans_in_phase": docs.as_int(fields.get("Total Plans in Phase")),
        "status": fields.get("Status"),
        "progress": fields.get("Progress"),
        "last_activity": fields.get("Last Activity"),
        "fields": fields,
    }
    return snapshot, None


def cmd_state_advance_plan(config, args) -> tuple:
    outcome = {}

    def transform(content: str) -> Optional[str]:
        current = docs.as_int(docs.extract_field(content, "Current Plan"))
        total = docs.as_int(docs.extract_field(content, "Total Plans in Phase"))
        if current is None or total is None:
            outcome["error"] = "Cannot parse Current Plan or Total Plans in Phase from STATE.md"
            return None

        if current >= total:
            patches = {"Status": "Phase complete, ready for verification", "Last Activity": _today()}
            outcome.update(advanced=False, reason="last_plan", current_plan=current, total_plans=total)
        else:
            patches = {"Current Plan": str(current + 1), "Status": "Ready to execute", "Last Activity": _today()}
            outcome.update(advanced=True, previous_plan=current, current_plan=current + 1, total_plans=total)
        return docs.patch_fields(content, patches).content

    try:
        docs.update_document(config.state_path, transform)
    except FileNotFoundError:
        return _state_missing(), "false"
    return outcome, RAW_TRUE_FALSE[bool(outcome.get("advanced"))]


def cmd_state_record_metric(config, args) -> tuple:
    row = (
        f"| Phase {args.phase} P{args.plan} | {args.duration} | "
        f"{args.tasks or '-'} tasks | {args.files or '-'} files |"
    )
    recorded = _rewrite_state(config, lambda content: docs.append_table_row(content, docs.METRICS_SECTION, row))
    if recorded is None:
        return _state_missing(), "false"
    result = {"recorded": recorded, "phase": args.phase, "plan": args.plan, "duration": args.duration}
    if not recorded:
        result["reason"] = "Performance Metrics table not found in STATE.md"
    return result, RAW_TRUE_FALSE[recorded]


def cmd_state_update_progress(config, args) -> tuple:
    progress = docs.phase_progress(config.phases_dir)
    percent = progress["percent"]
    bar = f"[{docs.render_progress_bar(percent)}] {percent}%"
    updated = _rewrite_state(config, lambda content: docs.replace_field(content, "Progress", bar))
    if updated is None:
        return _state_missing(), "false"
    result = {
        "updated": updated,
        "percent": percent,
        "completed": progress["total_summaries"],
        "total": progress["total_plans"],
        "bar": bar,
    }
    return result, bar


def cmd_state_add_decision(config, args) -> tuple:
    entry = f"- [Phase {args.phase}]: {args.summary}"
    if args.rationale:
        entry += f" — {args.rationale}"
    added = _rewrite_state(config, lambda content: docs.append_section_entry(content, docs.DECISIONS_SECTION, entry))
    if added is None:
        return _state_missing(), "false"
    result = {"added": added, "decision": entry}
    if not added:
        result["reason"] = "Decisions section not found in STATE.md"
    return result, RAW_TRUE_FALSE[added]


def cmd_state_add_blocker(config, args) -> tuple:
    text = args.text or " ".join(args.words)
    if not text:
        raise UsageError("state add-blocker requires text")
    added = _rewrite_state(config, lambda content: docs.append_section_entry(content, docs.BLOCKERS_SECTION, f"- {text}"))
    if added is None:
        return _state_missing(), "false"
    result = {"added": added, "blocker": text}
    if not added:
        result["reason"] = "Blockers section not found in STATE.md"
    return result, RAW_TRUE_FALSE[added]


def cmd_state_resolve_blocker(config, args) -> tuple:
    text = args.text or " ".join(args.words)
    if not text:
        raise UsageError("state resolve-blocker requires text")
    resolved = _rewrite_state(config, lambda content: docs.remove_section_entries(content, docs.BLOCKERS_SECTION, text))
    if resolved is None:
        return _state_missing(), "false"
    result = {"resolved": resolved, "blocker": text}
    if not resolved:
        result["reason"] = "Blockers section not found in STATE.md"
    return result, RAW_TRUE_FALSE[resolved]


def cmd_state_record_session(config, args) -> tuple:
    now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    patches = {"Last session": now}
    if args.stopped_at:
        patches["Stopped At"] = args.stopped_at
    patches["Resume File"] = args.resume_file or "None"
    result = _patch_state(config, patches)
    return {"recorded": bool(result.get("updated")), **result}, RAW_TRUE_FALSE[bool(result.get("updated"))]


def _rewrite_state(config, transform) -> Optional[bool]:
    """Apply a text transform to STATE.md; None if the file is missing.

    Returns whether the transform found its target (a None result from
    transform means the target section or field was absent).
    """
    found = {}

    def wrapped(content: str) -> Optional[str]:
        updated = transform(content)
        found["ok"] = updated is not None
        return updated

    try:
        docs.update_document(config.state_path, wrapped)
    except FileNotFoundError:
        return None
    return found.get("ok", False)


def cmd_history_digest(config, args) -> tuple:
    return docs.history_digest(config.phases_dir), None


def cmd_summary_extract(config, args) -> tuple:
    content = docs.read_document(_path_arg(config, args.file))
    if content is None:
        raise UsageError(f"File not found: {args.file}")

    tree = docs.extract_frontmatter(content)
    if not args.fields:
        return tree, None
    wanted = [name.strip() for name in args.fields.split(",") if name.strip()]
    return {name: tree[name] for name in wanted if name in tree}, None


# ─── Roadmap commands ─────────────────────────────────────────────────


def cmd_roadmap_get_phase(config, args) -> tuple:
    content = docs.read_document(config.roadmap_path)
    if content is None:
        return {"found": False, "error": "ROADMAP.md not found"}, ""

    phase = docs.find_roadmap_phase(content, args.phase)
    if phase is None:
        return {"found": False, "phase_number": args.phase}, ""
    return {
        "found": True,
        "phase_number": phase.number,
        "phase_name": phase.name,
        "goal": phase.goal,
        "depends_on": phase.depends_on,
        "section": phase.section,
    }, phase.section


def cmd_roadmap_analyze(config, args) -> tuple:
    content = docs.read_document(config.roadmap_path)
    if content is None:
        return {"error": "ROADMAP.md not found", "milestones": [], "phases": [], "current_phase": None}, None
    return docs.analyze_roadmap(content, config.phases_dir), None


def cmd_progress(config, args) -> tuple:
    progress = docs.phase_progress(config.phases_dir)
    percent = progress["percent"]
    bar = f"[{docs.render_progress_bar(percent)}] {percent}%"
    if args.format == "bar":
        detail = f"{progress['total_summaries']}/{progress['total_plans']} plans"
        return {"bar": f"{bar} ({detail})", "percent": percent}, f"{bar} ({detail})"
    return progress, f"{percent}%"


# ─── Config and utility commands ──────────────────────────────────────


def cmd_config_ensure_section(config, args) -> tuple:
    if config.config_path.is_file():
        return {"created": False, "reason": "already_exists"}, "exists"
    config.planning_dir.mkdir(parents=True, exist_ok=True)
    config.config_path.write_text(json.dumps(docs.PREFERENCE_DEFAULTS, indent=2) + "\n")
    docs.log(f"Created {config.config_path.relative_to(config.root)}")
    return {"created": True, "path": str(config.config_path.relative_to(config.root))}, "created"


def cmd_config_set(config, args) -> tuple:
    if not config.config_path.is_file():
        return {"updated": False, "error": "config.json not found. Run config-ensure-section first."}, "false"

    data = docs.read_preferences_file(config.config_path)
    keys = args.key.split(".")
    node = data
    for key in keys[:-1]:
        if not isinstance(node.get(key), dict):
            node[key] = {}
        node = node[key]
    value = docs.coerce_cli_value(args.value)
    node[keys[-1]] = value
    config.config_path.write_text(json.dumps(data, indent=2) + "\n")
    return {"updated": True, "key": args.key, "value": value}, f"{args.key}={args.value}"


def cmd_commit(config, args) -> tuple:
    if not args.message and not args.amend:
        raise UsageError("commit message required")
    outcome = docs.commit_planning_docs(config, args.message, files=args.files, amend=args.amend)
    return vars(outcome), outcome.hash or outcome.reason


def cmd_generate_slug(config, args) -> tuple:
    text = " ".join(args.text)
    if not text:
        raise UsageError("text required for slug generation")
    slug = docs.slugify(text)
    return {"slug": slug}, slug


def cmd_verify_path_exists(config, args) -> tuple:
    target = _path_arg(config, args.path)
    if target.is_dir():
        kind = "directory"
    elif target.exists():
        kind = "file"
    else:
        kind = None
    return {"exists": kind is not None, "type": kind}, RAW_TRUE_FALSE[kind is not None]


# ─── Argument parsing ─────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    # Global flags are accepted before or after the subcommand.
    common = argparse.ArgumentParser(add_help=False, allow_abbrev=False)
    common.add_argument("--raw", action="store_true", default=argparse.SUPPRESS,
                        help="Print the bare result value instead of JSON")
    common.add_argument("--verbose", "-v", action="store_true", default=argparse.SUPPRESS,
                        help="Enable verbose diagnostics on stderr")
    common.add_argument("--cwd", metavar="DIR", default=argparse.SUPPRESS,
                        help="Project root (default: current directory)")

    parser = argparse.ArgumentParser(
        prog="plan-tools",
        description="Maintain planning documents under .planning/",
        parents=[common],
        allow_abbrev=False,
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    def add(subparsers, name: str, handler, help_text: str) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help_text, parents=[common], allow_abbrev=False)
        sub.set_defaults(handler=handler)
        return sub

    def group(name: str, help_text: str):
        sub = commands.add_parser(name, help=help_text, parents=[common], allow_abbrev=False)
        nested = sub.add_subparsers(dest=f"{name.replace('-', '_')}_command", metavar="ACTION")
        nested.required = True
        return nested

    frontmatter = group("frontmatter", "Read and write document frontmatter")
    sub = add(frontmatter, "get", cmd_frontmatter_get, "Print the frontmatter tree or one field")
    sub.add_argument("file")
    sub.add_argument("--field")
    sub = add(frontmatter, "set", cmd_frontmatter_set, "Set one field (true/false and numbers are coerced)")
    sub.add_argument("file")
    sub.add_argument("--field", required=True)
    sub.add_argument("--value", required=True)
    sub = add(frontmatter, "merge", cmd_frontmatter_merge, "Merge a JSON object into the frontmatter")
    sub.add_argument("file")
    sub.add_argument("--data", required=True)
    sub = add(frontmatter, "validate", cmd_frontmatter_validate, "Check required fields for a schema")
    sub.add_argument("file")
    sub.add_argument("--schema", required=True, choices=sorted(FRONTMATTER_SCHEMAS))

    sub = add(commands, "find-phase", cmd_find_phase, "Locate a phase directory")
    sub.add_argument("phase")
    sub = add(commands, "phase-plan-index", cmd_phase_plan_index, "Index the plans of a phase")
    sub.add_argument("phase")

    phases = group("phases", "List phases")
    sub = add(phases, "list", cmd_phases_list, "List phase directories or their files")
    sub.add_argument("--type", choices=["plans", "summaries", "all"])
    sub.add_argument("--phase")

    phase = group("phase", "Phase lifecycle")
    sub = add(phase, "next-decimal", cmd_phase_next_decimal, "Next free decimal phase after a base phase")
    sub.add_argument("phase")
    sub = add(phase, "add", cmd_phase_add, "Append a new integer phase")
    sub.add_argument("description", nargs="+")
    sub = add(phase, "insert", cmd_phase_insert, "Insert a decimal phase after an existing one")
    sub.add_argument("after")
    sub.add_argument("description", nargs="+")
    sub = add(phase, "remove", cmd_phase_remove, "Remove a phase directory")
    sub.add_argument("phase")
    sub.add_argument("--force", action="store_true", help="Remove even if plans were executed")
    sub = add(phase, "complete", cmd_phase_complete, "Mark a phase complete in ROADMAP.md")
    sub.add_argument("phase")

    checks = group("verify", "Structural checks")
    sub = add(checks, "plan-structure", cmd_verify_plan_structure, "Check plan frontmatter and tasks")
    sub.add_argument("file")
    sub = add(checks, "phase-completeness", cmd_verify_phase_completeness, "Check every plan has a summary")
    sub.add_argument("phase")
    sub = add(checks, "references", cmd_verify_references, "Check @-references and backtick paths exist")
    sub.add_argument("file")
    sub = add(checks, "commits", cmd_verify_commits, "Check hashes name commits")
    sub.add_argument("hashes", nargs="*")
    sub = add(checks, "artifacts", cmd_verify_artifacts, "Check must_haves.artifacts")
    sub.add_argument("file")
    sub = add(checks, "key-links", cmd_verify_key_links, "Check must_haves.key_links")
    sub.add_argument("file")

    sub = add(commands, "verify-summary", cmd_verify_summary, "Spot-check a SUMMARY.md")
    sub.add_argument("file")
    sub.add_argument("--check-count", type=int, default=verify.DEFAULT_SUMMARY_CHECK_COUNT)

    validate = group("validate", "Cross-document validation")
    add(validate, "consistency", cmd_validate_consistency, "Compare ROADMAP.md phases with disk")

    state = group("state", "Read and patch STATE.md")
    add(state, "load", cmd_state_load, "Print preferences and STATE.md")
    sub = add(state, "get", cmd_state_get, "Print a field or section")
    sub.add_argument("name", nargs="?")
    sub = add(state, "update", cmd_state_update, "Set one field")
    sub.add_argument("field")
    sub.add_argument("value")
    sub = add(state, "patch", cmd_state_patch, "Set several fields: --Field value ...")
    sub.set_defaults(accepts_extras=True)
    add(state, "snapshot", cmd_state_snapshot, "Print the fields of STATE.md")
    add(state, "advance-plan", cmd_state_advance_plan, "Move to the next plan of the phase")
    sub = add(state, "record-metric", cmd_state_record_metric, "Add a Performance Metrics row")
    sub.add_argument("--phase", required=True)
    sub.add_argument("--plan", required=True)
    sub.add_argument("--duration", required=True)
    sub.add_argument("--tasks")
    sub.add_argument("--files")
    add(state, "update-progress", cmd_state_update_progress, "Recompute the Progress bar")
    sub = add(state, "add-decision", cmd_state_add_decision, "Append to the Decisions section")
    sub.add_argument("--phase", default="?")
    sub.add_argument("--summary", required=True)
    sub.add_argument("--rationale", default="")
    for name, handler, help_text in (
        ("add-blocker", cmd_state_add_blocker, "Append to the Blockers section"),
        ("resolve-blocker", cmd_state_resolve_blocker, "Remove matching Blockers entries"),
    ):
        sub = add(state, name, handler, help_text)
        sub.add_argument("words", nargs="*")
        sub.add_argument("--text")
    sub = add(state, "record-session", cmd_state_record_session, "Record session continuity fields")
    sub.add_argument("--stopped-at")
    sub.add_argument("--resume-file")

    add(commands, "history-digest", cmd_history_digest, "Roll up what every SUMMARY.md provides and decided")
    sub = add(commands, "summary-extract", cmd_summary_extract, "Print selected frontmatter fields of a summary")
    sub.add_argument("file")
    sub.add_argument("--fields", help="Comma-separated field names")

    roadmap = group("roadmap", "Read ROADMAP.md")
    sub = add(roadmap, "get-phase", cmd_roadmap_get_phase, "Print one phase section")
    sub.add_argument("phase")
    add(roadmap, "analyze", cmd_roadmap_analyze, "Join roadmap phases with their on-disk status")

    sub = add(commands, "progress", cmd_progress, "Overall plan completion")
    sub.add_argument("format", nargs="?", choices=["json", "bar"], default="json")

    sub = add(commands, "commit", cmd_commit, "Commit planning documents")
    sub.add_argument("message", nargs="?")
    sub.add_argument("--files", nargs="+")
    sub.add_argument("--amend", action="store_true")

    add(commands, "config-ensure-section", cmd_config_ensure_section, "Create .planning/config.json")
    sub = add(commands, "config-set", cmd_config_set, "Set a dotted key in config.json")
    sub.add_argument("key")
    sub.add_argument("value")

    sub = add(commands, "generate-slug", cmd_generate_slug, "Slugify text")
    sub.add_argument("text", nargs="*")
    sub = add(commands, "verify-path-exists", cmd_verify_path_exists, "Check a path exists")
    sub.add_argument("path")

    return parser


def run(argv: Optional[list[str]] = None) -> int:
    """Parse arguments, run one command, print its result. Returns the exit status."""
    parser = build_parser()
    args, extras = parser.parse_known_args(argv)
    if extras and not getattr(args, "accepts_extras", False):
        parser.error(f"unrecognized arguments: {' '.join(extras)}")
    args.extras = extras

    docs.VERBOSE = getattr(args, "verbose", False)
    raw = getattr(args, "raw", False)
    root = getattr(args, "cwd", None) or os.getcwd()

    try:
        if not Path(root).is_dir():
            raise UsageError(f"--cwd is not a directory: {root}")
        config = docs.load_config(root)
        docs.verbose_log(f"Project root: {config.root}", "CONFIG")
        result, raw_value = args.handler(config, args)
    except UsageError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    emit(result, raw=raw, raw_value=raw_value)
    return 0


def main():
    sys.exit(run())


if __name__ == "__main__":
    main()
