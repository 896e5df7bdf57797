"""CLI entry point for lockstep."""

from __future__ import annotations

import argparse
import json
import sys
from importlib.metadata import version as pkg_version
from pathlib import Path

from lockstep.bump import (
    BumpOptions,
    BumpPlan,
    apply_bump_plan,
    apply_dependency_updates,
    plan_bumps,
    plan_dependency_updates,
)
from lockstep.checks import (
    ConstraintReport,
    ConstraintViolation,
    ViolationType,
    check_constraints,
)
from lockstep.errors import LockstepError
from lockstep.graph import (
    merge_order,
    topological_order,
    transitive_dependencies,
    transitive_dependents,
)
from lockstep.models import DependencyUpdate, RepoId
from lockstep.output import configure_logging, fatal, info, step, warn
from lockstep.versions import BumpLevel, BumpMode
from lockstep.viz import (
    Direction,
    GraphFormat,
    dependency_table,
    directional_edges,
    graph_roots,
    graph_scope,
    graph_to_json,
    node_labels,
    render_dot,
    render_flat,
    render_tree,
)
from lockstep.workspace import Workspace, load_workspace

__version__ = pkg_version("lockstep")

_FIX_HINTS = {
    ViolationType.UNSATISFIED: "update constraint to include {actual}",
    ViolationType.EXACT_PIN: "relax exact pin to a range",
    ViolationType.UPPER_BOUND: "consider widening upper bound",
}


def _load(args: argparse.Namespace) -> Workspace:
    return load_workspace(root=args.root, config_path=args.config)


def _display(path: Path, root: Path) -> str:
    try:
        return str(path.relative_to(root))
    except ValueError:
        return str(path)


def _print_report(report: ConstraintReport, fix_hints: bool = False) -> None:
    if report.ok:
        info("no constraint issues found")
        return

    if report.cycles:
        print("cycles:")
        for cycle in report.cycles:
            print(f"  {' -> '.join(cycle)}")

    if report.missing:
        print("missing internal dependencies:")
        for missing in report.missing:
            dep = missing.dependency
            print(f"  {missing.from_repo} -> {dep.name} ({dep.constraint})")

    if report.violations:
        print("constraint violations:")
        for violation in report.violations:
            print(f"  {_describe(violation)}")
            hint = _FIX_HINTS.get(violation.violation_type)
            if fix_hints and hint:
                print(f"    suggestion: {hint.format(actual=violation.actual_version)}")


def _describe(violation: ConstraintViolation) -> str:
    return (
        f"{violation.from_repo} -> {violation.to_repo} {violation.constraint} "
        f"(actual {violation.actual_version}) [{violation.violation_type.value}]"
    )


def _print_updates(updates: list[DependencyUpdate]) -> None:
    for update in updates:
        print(f"  {update.repo}: {update.dependency} -> {update.constraint}")


def _print_plan(plan: BumpPlan) -> None:
    print("version bump plan:")
    for repo_id, bump in plan.bumps.items():
        suffix = " (cascade)" if repo_id in plan.cascaded else ""
        print(f"  {repo_id}: {bump.old} -> {bump.new}{suffix}")
    if plan.updates:
        print("dependency updates:")
        _print_updates(plan.updates)


def _parse_requested(entries: list[str]) -> dict[RepoId, str]:
    requested: dict[RepoId, str] = {}
    for entry in entries:
        repo, sep, version = entry.partition("=")
        if not sep or not repo or not version:
            fatal(f"Invalid --set: expected REPO=VERSION, got: {entry}")
        requested[RepoId(repo)] = version
    return requested


def cmd_graph_show(args: argparse.Namespace) -> None:
    """Draw the graph, or the part of it the given repos reach."""
    ws = _load(args)
    resolved = ws.resolved()
    direction = Direction(args.direction)
    selected = [ws.repo(r).id for r in args.repos]
    scope = graph_scope(resolved, selected, direction)
    edges = directional_edges(resolved, direction, scope)
    labels = node_labels(scope, ws.versions())

    fmt = GraphFormat(args.format)
    if fmt == GraphFormat.JSON:
        print(json.dumps(graph_to_json(edges, labels), indent=2))
    elif fmt == GraphFormat.DOT:
        print(render_dot(edges, labels), end="")
    else:
        roots = sorted(selected) if selected else graph_roots(edges)
        render = render_tree if fmt == GraphFormat.TREE else render_flat
        print(render(roots, edges, labels), end="")


def cmd_graph_order(args: argparse.Namespace) -> None:
    """Print repos in dependency order (or the merge order of the given repos)."""
    ws = _load(args)
    resolved = ws.resolved()
    if args.repos:
        order = merge_order(resolved, [ws.repo(r).id for r in args.repos])
    else:
        order = topological_order(resolved)
    for repo_id in order:
        print(repo_id)


def cmd_graph_deps(args: argparse.Namespace) -> None:
    """Print every repo the given repo depends on, directly or not."""
    ws = _load(args)
    for repo_id in transitive_dependencies(ws.resolved(), ws.repo(args.repo).id):
        print(repo_id)


def cmd_graph_dependents(args: argparse.Namespace) -> None:
    """Print every repo that depends on the given repo, directly or not."""
    ws = _load(args)
    for repo_id in transitive_dependents(ws.resolved(), ws.repo(args.repo).id):
        print(repo_id)


def cmd_graph_check(args: argparse.Namespace) -> None:
    """Report cycles, missing dependencies and constraint violations."""
    ws = _load(args)
    report = check_constraints(ws.graph, ws.index, ws.versions())
    if args.json:
        print(json.dumps(report.model_dump(mode="json"), indent=2))
        return
    _print_report(report, fix_hints=args.fix_hints)


def cmd_version_show(args: argparse.Namespace) -> None:
    """Print the declared version of every repo."""
    ws = _load(args)
    versions = ws.versions()
    entries = [
        {
            "repo": repo_id,
            "version": versions[repo_id].raw if repo_id in versions else None,
        }
        for repo_id, repo in sorted(ws.repos.items())
        if not repo.ignored
    ]
    if args.json:
        print(json.dumps(entries, indent=2))
        return
    for entry in entries:
        print(f"{entry['repo']}: {entry['version'] or '(no version)'}")


def cmd_version_check(args: argparse.Namespace) -> None:
    """Report unsatisfied constraints; exits 1 if there are any."""
    ws = _load(args)
    report = check_constraints(ws.graph, ws.index, ws.versions()).only(
        ViolationType.UNSATISFIED
    )
    _print_report(report)
    if report.violations:
        sys.exit(1)


def cmd_version_bump(args: argparse.Namespace) -> None:
    """Bump versions, optionally cascading to dependents."""
    ws = _load(args)
    requested = _parse_requested(args.set or [])
    targets = [ws.repo(r).id for r in args.repos]
    if not targets and not requested:
        info("no repos selected for version bump")
        return

    defaults = ws.config.versioning
    options = BumpOptions(
        level=BumpLevel(args.level) if args.level else None,
        mode=BumpMode(args.mode) if args.mode else None,
        pre=args.pre,
        cascade=args.cascade or defaults.cascade_bumps,
        requested=requested,
    )

    step("Planning version bump")
    plan = plan_bumps(ws.graph, ws.index, ws.repos, ws.versions(), targets, options, defaults)
    _print_plan(plan)
    for violation in plan.violations:
        warn(_describe(violation))

    if args.dry_run:
        return

    step("Writing version changes")
    for path in apply_bump_plan(plan, ws.repos):
        info(f"✓ {_display(path, ws.root)}")


def cmd_deps_update(args: argparse.Namespace) -> None:
    """Align internal constraints with the versions currently declared."""
    ws = _load(args)
    only = ws.package_names(args.packages) if args.packages else None
    updates = plan_dependency_updates(ws.graph, ws.index, ws.repos, ws.versions(), only)
    if not updates:
        info("all internal constraints already point at current versions")
        return

    print("dependency update plan:")
    _print_updates(updates)
    if args.dry_run:
        return

    step("Writing dependency changes")
    for path in apply_dependency_updates(updates, ws.repos):
        info(f"✓ {_display(path, ws.root)}")


def cmd_deps_show(args: argparse.Namespace) -> None:
    """List each repo's internal constraints next to the versions they target."""
    ws = _load(args)
    table = dependency_table(ws.graph, ws.index, ws.versions())
    if args.json:
        print(json.dumps([entry.model_dump(mode="json") for entry in table], indent=2))
        return
    for entry in table:
        print(f"{entry.repo}:")
        for row in entry.dependencies:
            spec = f" {row.constraint}" if row.constraint else ""
            actual = f" (actual {row.actual})" if row.actual is not None else ""
            print(f"  {row.name}{spec}{actual}")


def cmd_deps_check(args: argparse.Namespace) -> None:
    """Report internal constraints the declared versions do not satisfy."""
    ws = _load(args)
    report = check_constraints(ws.graph, ws.index, ws.versions()).only(
        ViolationType.UNSATISFIED
    )
    if args.json:
        print(json.dumps(report.model_dump(mode="json"), indent=2))
    else:
        _print_report(report)
    if report.violations:
        sys.exit(1)


def cli() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="lockstep",
        description="Dependency order and version consistency across many repos.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--root", type=Path, default=None, help="Workspace root directory."
    )
    parser.add_argument(
        "--config", type=Path, default=None, help="Path to lockstep.toml."
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log debug detail to stderr."
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # graph subcommands
    graph_parser = subparsers.add_parser("graph", help="Inspect the dependency graph.")
    graph_parser.set_defaults(
        func=cmd_graph_show,
        repos=[],
        format=GraphFormat.TREE.value,
        direction=Direction.DOWN.value,
    )
    graph_sub = graph_parser.add_subparsers(dest="graph_command")

    gshow_parser = graph_sub.add_parser("show", help="Draw the dependency graph (default).")
    gshow_parser.add_argument(
        "repos",
        nargs="*",
        metavar="REPO",
        help="Only these repos and what they reach in the chosen direction.",
    )
    gshow_parser.add_argument(
        "--format",
        choices=[fmt.value for fmt in GraphFormat],
        default=GraphFormat.TREE.value,
        help="Output format. (default: tree)",
    )
    gshow_parser.add_argument(
        "--direction",
        choices=[direction.value for direction in Direction],
        default=Direction.DOWN.value,
        help="Follow dependencies (down), dependents (up) or both. (default: down)",
    )
    gshow_parser.set_defaults(func=cmd_graph_show)

    order_parser = graph_sub.add_parser(
        "order", help="Print repos in dependency order."
    )
    order_parser.add_argument(
        "repos",
        nargs="*",
        metavar="REPO",
        help="Only these repos and what they depend on (merge order).",
    )
    order_parser.set_defaults(func=cmd_graph_order)

    deps_parser = graph_sub.add_parser("deps", help="Transitive dependencies of a repo.")
    deps_parser.add_argument("repo", metavar="REPO")
    deps_parser.set_defaults(func=cmd_graph_deps)

    dependents_parser = graph_sub.add_parser(
        "dependents", help="Transitive dependents of a repo."
    )
    dependents_parser.add_argument("repo", metavar="REPO")
    dependents_parser.set_defaults(func=cmd_graph_dependents)

    check_parser = graph_sub.add_parser(
        "check", help="Check cycles, missing dependencies and constraints."
    )
    check_parser.add_argument(
        "--fix-hints", action="store_true", help="Suggest a fix for each violation."
    )
    check_parser.add_argument("--json", action="store_true", help="Print JSON.")
    check_parser.set_defaults(func=cmd_graph_check)

    # version subcommands
    version_parser = subparsers.add_parser("version", help="Show, check and bump versions.")
    version_sub = version_parser.add_subparsers(dest="version_command", required=True)

    show_parser = version_sub.add_parser("show", help="Print declared versions.")
    show_parser.add_argument("--json", action="store_true", help="Print JSON.")
    show_parser.set_defaults(func=cmd_version_show)

    vcheck_parser = version_sub.add_parser(
        "check", help="Report constraints the declared versions do not satisfy."
    )
    vcheck_parser.set_defaults(func=cmd_version_check)

    bump_parser = version_sub.add_parser("bump", help="Bump repo versions.")
    bump_parser.add_argument("repos", nargs="*", metavar="REPO", help="Repos to bump.")
    bump_parser.add_argument(
        "--level",
        choices=[level.value for level in BumpLevel],
        default=None,
        help="Semver component to increment. (default: patch)",
    )
    bump_parser.add_argument(
        "--mode",
        choices=[mode.value for mode in BumpMode],
        default=None,
        help="Override every repo's bump mode.",
    )
    bump_parser.add_argument("--pre", default=None, help="Prerelease tag (e.g., rc.1).")
    bump_parser.add_argument(
        "--set",
        action="append",
        metavar="REPO=VERSION",
        help="Set an explicit new version (repeatable).",
    )
    bump_parser.add_argument(
        "--cascade",
        action="store_true",
        help="Also bump dependents and rewrite their constraints.",
    )
    bump_parser.add_argument(
        "--dry-run", action="store_true", help="Print the plan without writing."
    )
    bump_parser.set_defaults(func=cmd_version_bump)

    # deps subcommands
    dep_parser = subparsers.add_parser("deps", help="Manage internal constraints.")
    dep_sub = dep_parser.add_subparsers(dest="deps_command", required=True)

    update_parser = dep_sub.add_parser(
        "update", help="Point internal constraints at current versions."
    )
    update_parser.add_argument(
        "packages",
        nargs="*",
        metavar="PACKAGE",
        help="Only constraints on these packages (repo ids or package names).",
    )
    update_parser.add_argument(
        "--dry-run", action="store_true", help="Print the plan without writing."
    )
    update_parser.set_defaults(func=cmd_deps_update)

    dshow_parser = dep_sub.add_parser(
        "show", help="List internal constraints and the versions they target."
    )
    dshow_parser.add_argument("--json", action="store_true", help="Print JSON.")
    dshow_parser.set_defaults(func=cmd_deps_show)

    dcheck_parser = dep_sub.add_parser(
        "check", help="Report internal constraints that are not satisfied."
    )
    dcheck_parser.add_argument("--json", action="store_true", help="Print JSON.")
    dcheck_parser.set_defaults(func=cmd_deps_check)

    args = parser.parse_args()
    configure_logging(verbose=args.verbose)
    try:
        args.func(args)
    except LockstepError as exc:
        fatal(str(exc))
