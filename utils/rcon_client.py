# utils/rcon_client.py
from __future__ import annotations

import asyncio
import contextlib
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

import aiohttp

from exceptions import ApiErrorKind, ConfigMissing, ExternalApiError

if TYPE_CHECKING:
    from utils.guild_config import GuildConfig

log = logging.getLogger(__name__)

_NUMERIC_ID = re.compile(r"^\d+$")
_BAN_NOISE = ("total bans", "identity id")


@dataclass(frozen=True)
class PlayerEntry:
    player_id: str
    uid: str
    name: str


@dataclass(frozen=True)
class BanEntry:
    uid: str
    name: str


# ---- payload parsing ------------------------------------------------

def parse_players(raw: str | None) -> list[PlayerEntry]:
    """
    `#players` returns `id;uid;name` rows mixed with headers and footers.
    A row counts only if it has two `;` and a purely numeric first field.
    """
    out: list[PlayerEntry] = []
    for line in (raw or "").splitlines():
        line = line.strip()
        if line.count(";") < 2:
            continue
        parts = [p.strip() for p in line.split(";")]
        pid, uid, name = parts[0], parts[1], ";".join(parts[2:]).strip()
        if not _NUMERIC_ID.match(pid) or not uid or not name:
            continue
        out.append(PlayerEntry(player_id=pid, uid=uid, name=name))
    return out


def parse_bans(raw: str | None) -> list[BanEntry]:
    out: list[BanEntry] = []
    for line in (raw or "").splitlines():
        line = line.strip()
        if not line or ("|" not in line and ";" not in line):
            continue
        delim = "|" if "|" in line else ";"
        parts = [p.strip() for p in line.split(delim)]
        uid = parts[0]
        name = parts[1] if len(parts) > 1 else ""
        if not uid or not name:
            continue
        if uid.lower() == "uid" or name.lower() == "uid":
            continue
        if any(noise in line.lower() for noise in _BAN_NOISE):
            continue
        out.append(BanEntry(uid=uid, name=name))
    return out


def classify_status(status: int) -> ApiErrorKind:
    if status in (401, 403):
        return ApiErrorKind.AUTH
    if status >= 500:
        return ApiErrorKind.OFFLINE
    return ApiErrorKind.NETWORK


# ---- client ---------------------------------------------------------

class RconClient:
    """POSTs RCON text commands to the 0grind.io HTTP API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        session_factory: Callable[..., aiohttp.ClientSession] = aiohttp.ClientSession,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session_factory = session_factory
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = self._session_factory(timeout=self.timeout)
        return self._session

    async def close(self) -> None:
        if self._session is not None:
            with contextlib.suppress(Exception):
                await self._session.close()
        self._session = None

    async def command(self, server_id: str, api_token: str, command: str) -> str:
        url = f"{self.base_url}/{server_id}/rcon"
        headers = {"Authorization": f"Bearer {api_token}"}
        log.info("[rcon] %s → %s", server_id, command)
        try:
            async with self._get_session().post(url, json={"command": command}, headers=headers) as resp:
                status = resp.status
                try:
                    body = await resp.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError):
                    body = None
        except asyncio.TimeoutError as e:
            raise ExternalApiError(None, "request timed out", ApiErrorKind.TIMEOUT) from e
        except aiohttp.ClientError as e:
            raise ExternalApiError(None, f"{type(e).__name__}: {e}", ApiErrorKind.NETWORK) from e

        body = body if isinstance(body, dict) else {}
        if not 200 <= status < 300:
            reason = body.get("reason") or f"HTTP {status}"
            raise ExternalApiError(status, str(reason), classify_status(status))
        if not body.get("success"):
            raise ExternalApiError(status, str(body.get("reason") or "Unknown error"), ApiErrorKind.REJECTED)

        data = body.get("data")
        return data if isinstance(data, str) else ""

    async def run(self, config: GuildConfig, command: str) -> str:
        if not config.is_ready:
            raise ConfigMissing(config.guild_id)
        return await self.command(config.server_id, config.api_token, command)

    async def players(self, config: GuildConfig) -> list[PlayerEntry]:
        return parse_players(await self.run(config, "#players"))

    async def bans(self, config: GuildConfig) -> list[BanEntry]:
        return parse_bans(await self.run(config, "#ban list"))

    async def find_player(self, config: GuildConfig, target: str) -> PlayerEntry | None:
        """Best-effort lookup by player id, uid or name; upstream errors read as `None`."""
        try:
            entries = await self.players(config)
        except (ExternalApiError, ConfigMissing) as e:
            log.warning("[rcon] player lookup for %s failed: %s", target, e)
            return None
        needle = target.lower()
        for e in entries:
            if target in (e.player_id, e.uid) or e.name.lower() == needle:
                return e
        return None
