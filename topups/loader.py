from __future__ import annotations

from pathlib import Path

import anyio

from .processing import Company, RecordParseError, User, parse_companies, parse_users

COMPANIES_FILE = Path("companies.json")
USERS_FILE = Path("users.json")


class LoadError(RuntimeError):
    pass


async def _read_source(path: Path) -> bytes:
    return await anyio.Path(path).read_bytes()


async def load_companies(path: Path | None = None) -> list[Company]:
    source = Path(path or COMPANIES_FILE)
    try:
        raw = await _read_source(source)
        return parse_companies(source.name, raw)
    except (OSError, RecordParseError) as exc:
        raise LoadError(f"load_companies error: {exc}") from exc


async def load_users(path: Path | None = None) -> list[User]:
    source = Path(path or USERS_FILE)
    try:
        raw = await _read_source(source)
        return parse_users(source.name, raw)
    except (OSError, RecordParseError) as exc:
        raise LoadError(f"load_users error: {exc}") from exc
