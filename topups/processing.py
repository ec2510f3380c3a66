from __future__ import annotations

import json
from collections import defaultdict
from dataclasses import dataclass
from decimal import MAX_EMAX, MAX_PREC, MIN_EMIN, Context, Decimal
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence


ZERO = Decimal("0")

# Token amounts are summed exactly, whatever their number of digits.
AMOUNT_CONTEXT = Context(prec=MAX_PREC, Emax=MAX_EMAX, Emin=MIN_EMIN)


class RecordParseError(ValueError):
    pass


@dataclass(frozen=True)
class Company:
    id: int
    name: str
    top_up: Decimal
    email_status: bool


@dataclass(frozen=True)
class User:
    id: int
    first_name: str
    last_name: str
    email: str
    company_id: int | None
    email_status: bool
    active_status: bool
    tokens: Decimal | None


@dataclass(frozen=True)
class TopUp:
    user: User
    previous_balance: Decimal
    new_balance: Decimal
    amount: Decimal


@dataclass(frozen=True)
class CompanyReport:
    company: Company
    emailed: tuple[TopUp, ...]
    not_emailed: tuple[TopUp, ...]
    total_top_ups: Decimal


def _decode_bytes(raw: bytes) -> str:
    return raw.decode("utf-8-sig")


def _as_amount(value: Any) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _parse_records(filename: str, raw: bytes) -> list[dict[str, Any]]:
    try:
        payload = json.loads(_decode_bytes(raw), parse_float=Decimal)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise RecordParseError(f"{filename}: invalid JSON: {exc}") from exc

    if not isinstance(payload, list):
        raise RecordParseError(f"{filename}: expected a JSON array of records.")

    records: list[dict[str, Any]] = []
    for index, item in enumerate(payload, start=1):
        if not isinstance(item, dict):
            raise RecordParseError(f"{filename}: record {index} must be an object.")
        records.append(item)
    return records


# Fields are not validated: a missing flag reads as false, a missing amount as zero.
def parse_companies(filename: str, raw: bytes) -> list[Company]:
    return [
        Company(
            id=record.get("id"),
            name=record.get("name") or "",
            top_up=_as_amount(record.get("top_up")) or ZERO,
            email_status=bool(record.get("email_status")),
        )
        for record in _parse_records(filename, raw)
    ]


def parse_users(filename: str, raw: bytes) -> list[User]:
    return [
        User(
            id=record.get("id"),
            first_name=record.get("first_name") or "",
            last_name=record.get("last_name") or "",
            email=record.get("email") or "",
            company_id=record.get("company_id"),
            email_status=bool(record.get("email_status")),
            active_status=bool(record.get("active_status")),
            tokens=_as_amount(record.get("tokens")),
        )
        for record in _parse_records(filename, raw)
    ]


def sort_users_by_last_name(users: Iterable[User]) -> list[User]:
    # sorted() is stable, so equal last names keep their load order.
    return sorted(users, key=lambda user: user.last_name)


def group_users_by_company(users: Iterable[User]) -> Mapping[int, tuple[User, ...]]:
    grouped: dict[int, list[User]] = defaultdict(list)
    for user in sort_users_by_last_name(users):
        # Users without a company are dropped, not reported.
        if user.company_id is None:
            continue
        grouped[user.company_id].append(user)

    return MappingProxyType({company_id: tuple(members) for company_id, members in grouped.items()})


def is_emailed(company: Company, user: User) -> bool:
    return bool(user.email_status and company.email_status)


def classify_company_users(
    company: Company,
    users: Sequence[User] | None,
) -> tuple[tuple[User, ...], tuple[User, ...]]:
    """Split a company's active users into (emailed, not emailed), keeping order.

    Inactive users are left out of both partitions.
    """
    emailed: list[User] = []
    not_emailed: list[User] = []
    for user in users or ():
        if not user.active_status:
            continue
        if is_emailed(company, user):
            emailed.append(user)
        else:
            not_emailed.append(user)
    return tuple(emailed), tuple(not_emailed)


def calculate_top_up(company: Company, user: User) -> TopUp:
    amount = company.top_up if user.active_status else ZERO
    previous = user.tokens if user.tokens is not None else ZERO
    return TopUp(
        user=user,
        previous_balance=previous,
        new_balance=AMOUNT_CONTEXT.add(previous, amount),
        amount=amount,
    )


def build_company_reports(
    companies: Sequence[Company],
    users_by_company: Mapping[int, Sequence[User]],
) -> list[CompanyReport]:
    """Build one report per company that has grouped users, in load order.

    The membership check runs before the activity filter, so a company whose
    users are all inactive still gets a report with empty lists and a zero total.
    """
    reports: list[CompanyReport] = []
    for company in companies:
        if company.id not in users_by_company:
            continue

        emailed_users, not_emailed_users = classify_company_users(company, users_by_company[company.id])
        emailed = tuple(calculate_top_up(company, user) for user in emailed_users)
        not_emailed = tuple(calculate_top_up(company, user) for user in not_emailed_users)
        total = ZERO
        for entry in (*emailed, *not_emailed):
            total = AMOUNT_CONTEXT.add(total, entry.amount)
        reports.append(
            CompanyReport(
                company=company,
                emailed=emailed,
                not_emailed=not_emailed,
                total_top_ups=total,
            )
        )
    return reports


def format_amount(value: Decimal) -> str:
    integral = value.to_integral_value(context=AMOUNT_CONTEXT)
    if value == integral:
        return format(integral, "f")
    return format(value, "f").rstrip("0")


def _render_top_up(entry: TopUp) -> list[str]:
    user = entry.user
    return [
        f"\t{user.last_name}, {user.first_name}, {user.email}\n",
        f"\t  Previous Token Balance, {format_amount(entry.previous_balance)}\n",
        f"\t  New Token Balance {format_amount(entry.new_balance)}\n",
    ]


def render_company_report(report: CompanyReport) -> str:
    company = report.company
    lines = [
        f"Company Id: {company.id}\n",
        f"Company Name: {company.name}\n",
        "Users Emailed:\n",
    ]
    for entry in report.emailed:
        lines.extend(_render_top_up(entry))

    lines.append("Users Not Emailed:\n")
    for entry in report.not_emailed:
        lines.extend(_render_top_up(entry))

    lines.append(f"\tTotal amount of top ups for {company.name}: {format_amount(report.total_top_ups)}\n\n")
    return "".join(lines)
