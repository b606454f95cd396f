"""
webprobe command line
=====================

Offline inspection of what a run would do: the plan for a query, how a set
of domains ranks, and the budget presets per operator mode.

Usage:
    webprobe plan "What is Acme's pricing?" --mode fast
    webprobe rank github.com reddit.com acme.com
    webprobe modes
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from webprobe import __version__
from webprobe.core.config import WebProbeConfig, load_config
from webprobe.core.exceptions import WebProbeError
from webprobe.logging_config import setup_logging
from webprobe.research.planner import MODE_BUDGETS, Planner
from webprobe.research.source_intelligence import SourceIntelligence
from webprobe.research.types import OperatorMode, ResearchConstraints, ResearchObjective

console = Console()


def _source_intelligence(config: WebProbeConfig, state_path: str | None) -> SourceIntelligence:
    intel = SourceIntelligence(config.source_intelligence)
    if state_path:
        state = json.loads(Path(state_path).read_text(encoding="utf-8"))
        intel.import_state(state.get("source_intelligence", state))
    return intel


def cmd_plan(args: argparse.Namespace, config: WebProbeConfig) -> int:
    """Print the research plan for a query"""
    intel = _source_intelligence(config, args.state)
    planner = Planner(intel, mode=OperatorMode(args.mode or config.engine.mode))
    objective = ResearchObjective(
        query=args.query,
        context=args.context or "",
        constraints=ResearchConstraints(
            max_pages=args.max_pages,
            max_time_ms=args.max_time_ms,
            blocked_domains=tuple(args.block or ()),
        ),
        required_confidence=args.confidence,
        known_domains=tuple(args.domain or ()),
    )
    plan = planner.generate_plan(objective)

    if args.json:
        print(json.dumps(plan.to_dict(), indent=2, default=str))
        return 0 if plan.is_valid else 1

    status = "[green]valid[/green]" if plan.is_valid else "[red]invalid[/red]"
    console.print(f"\n[bold]Plan {plan.id}[/bold] ({plan.mode.value}, {status})")
    console.print(f"  {plan.summary()}")
    console.print(f"  Confidence threshold: {plan.confidence_threshold:.0%}")
    budgets = plan.budgets
    console.print(
        f"  Budgets: {budgets.max_pages} pages, {budgets.max_time_ms / 1000:.0f}s, "
        f"concurrency {budgets.max_concurrency}"
    )
    for error in plan.validation_errors:
        console.print(f"  [red]✗ {error}[/red]")

    questions = Table(title="Questions")
    questions.add_column("Priority", justify="right")
    questions.add_column("Category")
    questions.add_column("Question")
    for question in plan.primary_questions:
        questions.add_row(str(question.priority), question.category, question.text)
    console.print(questions)

    domains = Table(title="Target domains")
    domains.add_column("Domain")
    domains.add_column("Tier", justify="right")
    domains.add_column("Relevance", justify="right")
    domains.add_column("Pages")
    for domain in plan.target_domains:
        domains.add_row(
            domain.domain,
            str(int(domain.expected_tier)),
            f"{domain.relevance:.2f}",
            ", ".join(domain.expected_pages),
        )
    console.print(domains)

    paths = Table(title="Execution paths")
    paths.add_column("Priority", justify="right")
    paths.add_column("Goal")
    paths.add_column("Scope")
    for path in plan.execution_paths:
        paths.add_row(str(path.priority), path.goal, ", ".join(path.domain_scope))
    console.print(paths)
    return 0 if plan.is_valid else 1


def cmd_rank(args: argparse.Namespace, config: WebProbeConfig) -> int:
    """Rank domains by trust tier and score"""
    intel = _source_intelligence(config, args.state)
    ranked = intel.rank_domains(args.domains)
    avoided = sorted({d for d in args.domains if intel.should_avoid(d)})

    if args.json:
        print(
            json.dumps(
                {"ranked": [s.to_dict() for s in ranked], "avoided": avoided}, indent=2
            )
        )
        return 0

    table = Table(title="Domain ranking")
    table.add_column("#", justify="right")
    table.add_column("Domain")
    table.add_column("Tier", justify="right")
    table.add_column("Overall", justify="right")
    table.add_column("Authority", justify="right")
    table.add_column("Originality", justify="right")
    for index, score in enumerate(ranked, 1):
        table.add_row(
            str(index),
            score.domain,
            str(int(score.tier)),
            f"{score.overall:.3f}",
            f"{score.authority:.2f}",
            f"{score.originality:.2f}",
        )
    console.print(table)
    if avoided:
        console.print(f"[yellow]Avoided:[/yellow] {', '.join(avoided)}")
    return 0


def cmd_modes(args: argparse.Namespace, config: WebProbeConfig) -> int:
    """Show budget presets per operator mode"""
    if args.json:
        print(json.dumps({m.value: b.to_dict() for m, b in MODE_BUDGETS.items()}, indent=2))
        return 0

    table = Table(title="Operator modes")
    table.add_column("Mode")
    table.add_column("Time", justify="right")
    table.add_column("Pages", justify="right")
    table.add_column("Concurrency", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Gain floor", justify="right")
    for mode, budgets in MODE_BUDGETS.items():
        table.add_row(
            mode.value,
            f"{budgets.max_time_ms / 1000:.0f}s",
            str(budgets.max_pages),
            str(budgets.max_concurrency),
            str(budgets.max_cost),
            f"{budgets.marginal_gain_floor:.2f}",
        )
    console.print(table)
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser"""
    parser = argparse.ArgumentParser(
        prog="webprobe",
        description="webprobe - autonomous web research planning tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"webprobe {__version__}")
    parser.add_argument("--config", help="YAML or JSON configuration file")
    parser.add_argument("--log-level", help="Override the configured log level")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    modes = [m.value for m in OperatorMode]

    # Plan command
    plan_p = subparsers.add_parser("plan", help="Show the research plan for a query")
    plan_p.add_argument("query", help="Research question")
    plan_p.add_argument("--mode", choices=modes, help="Operator mode")
    plan_p.add_argument("--context", help="Extra context, e.g. 'compare with latest'")
    plan_p.add_argument(
        "--domain", action="append", help="Known authoritative domain (repeatable)"
    )
    plan_p.add_argument("--block", action="append", help="Domain to exclude (repeatable)")
    plan_p.add_argument("--max-pages", type=int, help="Page budget override")
    plan_p.add_argument("--max-time-ms", type=int, help="Time budget override")
    plan_p.add_argument("--confidence", type=float, help="Required confidence (0-1)")
    plan_p.add_argument("--state", help="Exported source intelligence state (JSON)")
    plan_p.add_argument("--json", action="store_true", help="Print the plan as JSON")

    # Rank command
    rank_p = subparsers.add_parser("rank", help="Rank domains by trust")
    rank_p.add_argument("domains", nargs="+", help="Domains to rank")
    rank_p.add_argument("--state", help="Exported source intelligence state (JSON)")
    rank_p.add_argument("--json", action="store_true", help="Print the ranking as JSON")

    # Modes command
    modes_p = subparsers.add_parser("modes", help="Show operator mode budgets")
    modes_p.add_argument("--json", action="store_true", help="Print the presets as JSON")

    return parser


COMMANDS = {
    "plan": cmd_plan,
    "rank": cmd_rank,
    "modes": cmd_modes,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        config = load_config(args.config)
    except WebProbeError as e:
        console.print(f"[red]{e}[/red]")
        return 2
    setup_logging(args.log_level or config.log_level, json_format=config.log_json, stream=sys.stderr)

    try:
        return COMMANDS[args.command](args, config)
    except (WebProbeError, OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
