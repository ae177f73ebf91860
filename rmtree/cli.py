import argparse
import logging
import sys
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from rmtree.config import RmtreeConfig
from rmtree.errors import (
    BlockedByExternalUsers,
    PackageIndexError,
    PackageUnavailable,
    UserDeclined,
)
from rmtree.executor import PlanExecutor
from rmtree.package_index import BrewPackageIndex, PackageIndex
from rmtree.planner import build_removal_plan
from rmtree.reporting import Reporter

logger = logging.getLogger(__name__)

HELP_TOKENS = ("-h", "?", "--help")
FLAGS = ("--force", "--dry-run", "--quiet")

EPILOG = """
Not all formulae declare their dependencies and therefore this command may end
up removing something you still need. It should be used with caution.

--force overrides the dependency check for the formulae named on the command
line only. Their own dependencies are still kept when another formula uses
them: if 'ruby' depends on 'git', forcing 'ruby' does not remove 'git'.

--ignore must come after the formulae to remove; every name after it is kept.

Examples:
  rmtree <formula>                     Remove <formula> and its dependencies
  rmtree <formula> <formula2>          Remove both and their dependencies
  rmtree --force <formula>             Remove <formula> even if others depend on it
  rmtree <formula> --ignore <formula2> Remove <formula>, but keep <formula2>

Environment Variables:
  RMTREE_BREW             brew executable (default: brew)
  RMTREE_LOOKUP_WORKERS   concurrent dependency lookups (default: 1)
  RMTREE_LOG_LEVEL        log level (default: WARNING)
  RMTREE_LOG_FILE         also write logs to this file
"""


class RootOutcome(Enum):
    REMOVED = "removed"
    PARTIAL = "partial"
    PLANNED = "planned"
    BLOCKED = "blocked"
    UNAVAILABLE = "unavailable"


@dataclass
class RmtreeArguments:
    names: list[str] = field(default_factory=list)
    ignored: list[str] = field(default_factory=list)
    force: bool = False
    dry_run: bool = False
    quiet: bool = False
    show_help: bool = False
    unknown: list[str] = field(default_factory=list)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rmtree",
        description=(
            "Remove a formula entirely, including all of its dependencies, "
            "unless of course, they are used by another formula."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EPILOG,
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument("names", nargs="*", metavar="formula", help="Formulae to remove")
    parser.add_argument(
        "-h", "--help", action="store_true", dest="show_help", help="Show this help and exit"
    )
    parser.add_argument(
        "--force", action="store_true", help="Remove the named formulae even if others use them"
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Show what would be removed without removing it"
    )
    parser.add_argument("--quiet", action="store_true", help="Hide output")
    parser.add_argument(
        "--ignore", nargs="+", default=[], metavar="formula", help="Dependencies to keep"
    )
    return parser


def parse_arguments(argv: Sequence[str]) -> RmtreeArguments:
    """
    Split the command line into flags, target names and ignored names.

    Everything after --ignore is an ignored name, whatever it looks like.
    Unrecognized flags are collected rather than rejected.
    """
    tokens = list(argv)
    ignored: list[str] = []
    if "--ignore" in tokens:
        split = tokens.index("--ignore")
        tokens, ignored = tokens[:split], tokens[split + 1 :]

    known: list[str] = []
    unknown: list[str] = []
    for token in tokens:
        if token == "?":
            known.append("--help")
        elif token.startswith("-") and token not in FLAGS + HELP_TOKENS:
            unknown.append(token)
        else:
            known.append(token)

    namespace = build_parser().parse_intermixed_args(known)
    return RmtreeArguments(
        names=namespace.names,
        ignored=ignored,
        force=namespace.force,
        dry_run=namespace.dry_run,
        quiet=namespace.quiet,
        show_help=namespace.show_help,
        unknown=unknown,
    )


class RmtreeCLI:
    """Runs removals for each requested root, one after the other."""

    def __init__(self, index: PackageIndex, reporter: Reporter, lookup_workers: int = 1):
        self.index = index
        self.reporter = reporter
        self.lookup_workers = lookup_workers

    def _normalize_ignored(self, names: list[str]) -> set[str]:
        normalized = set()
        for name in names:
            try:
                normalized.add(self.index.resolve(name).name)
            except PackageUnavailable:
                logger.warning(f"Ignored formula {name} is unknown, keeping the name as given")
                normalized.add(name)
        return normalized

    def rmtree(
        self,
        name: str,
        force: bool = False,
        ignored: set[str] | None = None,
        dry_run: bool = False,
    ) -> RootOutcome:
        """
        Plan and carry out the removal of one root.

        Raises:
            UserDeclined: the confirmation prompt was answered with no
        """
        self.reporter.ohai(f"Examining installed formulae required by {name}...")
        try:
            with self.reporter.status(f"Examining {name}") as status:
                plan = build_removal_plan(
                    self.index,
                    name,
                    force=force,
                    ignore_set=ignored or set(),
                    max_workers=self.lookup_workers,
                    progress_callback=lambda done, total: status.update(
                        f"Examining {name}  {done} / {total}"
                    ),
                )
        except BlockedByExternalUsers as e:
            self.reporter.show_blocked(e.name, e.users)
            return RootOutcome.BLOCKED
        except (PackageUnavailable, PackageIndexError) as e:
            self.reporter.error(str(e))
            return RootOutcome.UNAVAILABLE

        self.reporter.show_plan(plan, dry_run=dry_run)

        if not dry_run:
            if not self.reporter.confirm("Proceed?"):
                raise UserDeclined()
            self.reporter.ohai("Cleaning up packages safe to remove")

        executor = PlanExecutor(
            self.index,
            dry_run=dry_run,
            progress_callback=lambda current, total, step: self.reporter.show_step(step),
        )
        report = executor.execute(plan)
        self.reporter.show_summary(report)

        if dry_run:
            return RootOutcome.PLANNED
        return RootOutcome.REMOVED if report.success else RootOutcome.PARTIAL

    def run(self, args: RmtreeArguments) -> int:
        if args.dry_run:
            self.reporter.info("This is a dry-run, nothing will be deleted")

        try:
            ignored = self._normalize_ignored(args.ignored)
        except PackageIndexError as e:
            self.reporter.error(str(e))
            return 1
        exit_code = 0
        for name in args.names:
            try:
                outcome = self.rmtree(name, force=args.force, ignored=ignored, dry_run=args.dry_run)
            except UserDeclined as e:
                self.reporter.error(str(e))
                return 0
            logger.debug(f"{name}: {outcome.value}")
            if outcome == RootOutcome.UNAVAILABLE:
                exit_code = 1
        return exit_code


def _configure_logging(config: RmtreeConfig) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file))
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
        handlers=handlers,
    )


def main(argv: Sequence[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else list(argv)
    config = RmtreeConfig.from_env()
    _configure_logging(config)

    parser = build_parser()
    args = parse_arguments(argv)
    if not argv or args.show_help:
        parser.print_help()
        return 0

    reporter = Reporter(quiet=args.quiet)
    for flag in args.unknown:
        reporter.warning(f"Unknown option: {flag!r}")
    if args.unknown:
        parser.print_usage(sys.stderr)

    if not args.names:
        reporter.error("This command requires a formula argument")
        return 1

    cli = RmtreeCLI(BrewPackageIndex(config), reporter, lookup_workers=config.lookup_workers)
    return cli.run(args)


if __name__ == "__main__":
    sys.exit(main())
