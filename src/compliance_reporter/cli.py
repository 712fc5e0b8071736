"""
Command-line entry point.

    compliance-report license --systems HOST-A HOST-B
    compliance-report updates --search-base "OU=Servers,DC=corp,DC=local" --machine-age 14 --csv
    compliance-report all --ldap-filter "(operatingSystem=*Server*)" --json --output report.json

Machines come either from --systems or from an Active Directory query;
the two modes cannot be mixed. Exit status is non-zero only when the
machine list cannot be resolved or the configuration is invalid.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from ._types import MachineRecord
from .config import ReporterConfig, load_config
from .discovery import ADDiscovery, resolve_targets
from .output import format_csv, format_json, format_table, write_output
from .remote.executor import WindowsExecutor
from .reports import REPORTS
from .utils import ConfigError, TargetResolutionError, setup_logging

logger = logging.getLogger(__name__)


def _split_systems(values: Optional[Sequence[str]]) -> List[str]:
    """Accept both space- and comma-separated machine names."""
    systems = []
    for value in values or []:
        systems.extend(name.strip() for name in value.split(",") if name.strip())
    return systems


def build_parser():
    import argparse

    parser = argparse.ArgumentParser(
        prog="compliance-report",
        description="Windows license and update compliance report",
    )
    parser.add_argument("report", choices=sorted(REPORTS), help="Report to generate")

    explicit = parser.add_argument_group("explicit targets")
    explicit.add_argument("--systems", nargs="+", metavar="NAME",
                          help="Machines to query (skips Active Directory)")

    retrieve = parser.add_argument_group("Active Directory targets")
    retrieve.add_argument("--search-base", metavar="DN", help="LDAP search base")
    retrieve.add_argument("--filter", dest="name_filter", metavar="PATTERN",
                          help="Computer name pattern, e.g. 'SRV-*'")
    retrieve.add_argument("--ldap-filter", metavar="FILTER", help="Additional raw LDAP filter")
    retrieve.add_argument("--machine-age", type=int, metavar="DAYS",
                          help="Only computers that logged on within DAYS (default: 30)")

    output = parser.add_argument_group("output")
    fmt = output.add_mutually_exclusive_group()
    fmt.add_argument("--csv", action="store_true", help="Write character-separated values")
    fmt.add_argument("--json", action="store_true", help="Write JSON")
    output.add_argument("--delimiter", default=",", help="CSV delimiter (default: ,)")
    output.add_argument("--output", type=Path, metavar="FILE", help="Write to FILE instead of stdout")

    parser.add_argument("--config", type=Path, metavar="FILE", help="YAML configuration file")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Log level (default: from config, INFO)")
    return parser


def render(records: Sequence[MachineRecord], record_type, args) -> str:
    """Serialize records in the format selected on the command line."""
    if args.csv:
        return format_csv(records, delimiter=args.delimiter, columns=record_type.columns())
    if args.json:
        return format_json(records)
    return format_table(records, columns=record_type.columns())


async def run_report(args, config: ReporterConfig) -> int:
    """
    Resolve targets, collect every machine, write the report.

    Raises:
        TargetResolutionError: If the directory lookup fails
    """
    systems = _split_systems(args.systems)

    discovery = None if systems else ADDiscovery.from_config(config)
    machine_age = args.machine_age if args.machine_age is not None else config.machine_age_days

    machines = await resolve_targets(
        systems=systems,
        discovery=discovery,
        search_base=args.search_base,
        name_filter=args.name_filter,
        ldap_filter=args.ldap_filter,
        machine_age=machine_age,
    )
    if not machines:
        logger.warning("No machines to report on")

    executor = WindowsExecutor.from_config(config)
    report = REPORTS[args.report](executor, legacy_gateway=config.legacy_wmi_gateway)
    records = await report.run(machines)

    write_output(render(records, report.record_type, args), args.output)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    retrieve_options = (args.search_base, args.name_filter, args.ldap_filter, args.machine_age)
    if args.systems is not None:
        if any(option is not None for option in retrieve_options):
            parser.error("--systems cannot be combined with --search-base, --filter, --ldap-filter or --machine-age")
        if not _split_systems(args.systems):
            parser.error("--systems requires at least one machine name")
    if len(args.delimiter) != 1:
        parser.error("--delimiter must be a single character")

    try:
        config = load_config(args.config, log_level=args.log_level)
    except ConfigError as e:
        setup_logging(args.log_level or "INFO")
        logger.error(str(e))
        return 1

    setup_logging(config.log_level)

    try:
        return asyncio.run(run_report(args, config))
    except TargetResolutionError as e:
        logger.error(f"Unable to resolve target machines: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
