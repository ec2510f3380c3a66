from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Iterable

import anyio

from . import loader
from .processing import CompanyReport, build_company_reports, group_users_by_company, render_company_report

OUTPUT_FILE = Path("output.txt")

logger = logging.getLogger(__name__)


async def write_report(stream: Any, reports: Iterable[CompanyReport]) -> None:
    for report in reports:
        await stream.write(render_company_report(report))


async def run(
    companies_path: Path | None = None,
    users_path: Path | None = None,
    output_path: Path | None = None,
) -> list[CompanyReport]:
    # The output is created before loading, so a failed load leaves it empty.
    async with await anyio.open_file(output_path or OUTPUT_FILE, "w", encoding="utf-8", newline="\n") as stream:
        companies = await loader.load_companies(companies_path)
        logger.debug("Loaded %d companies.", len(companies))

        users = await loader.load_users(users_path)
        logger.debug("Loaded %d users.", len(users))

        reports = build_company_reports(companies, group_users_by_company(users))
        await write_report(stream, reports)
    return reports


def main() -> int:
    logging.basicConfig(stream=sys.stderr, level=logging.INFO, format="%(message)s")
    try:
        anyio.run(run)
    except Exception as exc:
        logger.error("%s", exc)
    return 0


if __name__ == "__main__":
    sys.exit(main())
