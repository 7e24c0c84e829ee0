# services/ip_monitor.py
from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import aiohttp

from exceptions import ApiErrorKind, ExternalApiError
from services import embeds
from utils.scheduler import Scheduler, Ticket

log = logging.getLogger(__name__)


class IPMonitor:
    """
    Watches the bot's egress IP (the address whitelisted on the RCON
    dashboard) and alerts registered channels once per change.
    """

    def __init__(
        self,
        state_path: str | Path,
        check_url: str,
        interval_hours: float,
        bot=None,
        scheduler: Scheduler | None = None,
        session_factory: Callable[..., aiohttp.ClientSession] = aiohttp.ClientSession,
        prefix: str = "!",
    ):
        self.state_path = Path(state_path)
        self.check_url = check_url
        self.interval_hours = interval_hours
        self.bot = bot
        self.scheduler = scheduler or Scheduler()
        self._session_factory = session_factory
        self.prefix = prefix
        self._ticket: Ticket | None = None
        self.current_ip = ""
        self.last_checked = ""
        self.alert_channels: set[str] = set()
        self._load()

    # ---- persistence --------------------------------------------------

    def _load(self) -> None:
        if not self.state_path.exists():
            return
        try:
            data = json.loads(self.state_path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as e:
            log.error("[ipmon] cannot read %s: %s", self.state_path, e)
            return
        self.current_ip = str(data.get("currentIP") or "")
        self.last_checked = str(data.get("lastChecked") or "")
        self.alert_channels = {str(c) for c in data.get("alertChannels") or []}

    def _save(self) -> None:
        data = {
            "currentIP": self.current_ip,
            "lastChecked": self.last_checked,
            "alertChannels": sorted(self.alert_channels),
        }
        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            self.state_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError:
            log.exception("[ipmon] cannot save %s", self.state_path)

    # ---- alert channels -----------------------------------------------

    def add_channel(self, channel_id: str | int) -> bool:
        cid = str(channel_id)
        if cid in self.alert_channels:
            return False
        self.alert_channels.add(cid)
        self._save()
        log.info("[ipmon] added alert channel %s", cid)
        return True

    def remove_channel(self, channel_id: str | int) -> bool:
        cid = str(channel_id)
        if cid not in self.alert_channels:
            return False
        self.alert_channels.discard(cid)
        self._save()
        log.info("[ipmon] removed alert channel %s", cid)
        return True

    # ---- checking -----------------------------------------------------

    async def fetch_ip(self) -> str:
        try:
            async with self._session_factory(timeout=aiohttp.ClientTimeout(total=10)) as session:
                async with session.get(self.check_url) as resp:
                    if resp.status != 200:
                        raise ExternalApiError(resp.status, "IP lookup failed", ApiErrorKind.NETWORK)
                    data = await resp.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise ExternalApiError(None, "IP lookup timed out", ApiErrorKind.TIMEOUT) from e
        except aiohttp.ClientError as e:
            raise ExternalApiError(None, f"{type(e).__name__}: {e}", ApiErrorKind.NETWORK) from e
        ip = data.get("ip") if isinstance(data, dict) else None
        if not ip:
            raise ExternalApiError(200, "IP lookup returned no address", ApiErrorKind.NETWORK)
        return str(ip)

    async def check(self) -> bool:
        """Poll once; alert only on a change from a known previous IP. True if any alert went out."""
        try:
            ip = await self.fetch_ip()
        except ExternalApiError as e:
            log.warning("[ipmon] check failed: %s", e)
            return False

        previous = self.current_ip
        self.last_checked = datetime.now(timezone.utc).isoformat()
        changed = bool(previous) and ip != previous
        if changed:
            log.warning("[ipmon] IP CHANGE DETECTED %s -> %s", previous, ip)
        elif not previous:
            log.info("[ipmon] initial IP recorded: %s", ip)
        else:
            log.info("[ipmon] IP unchanged: %s", ip)

        self.current_ip = ip
        self._save()
        if changed:
            return await self._broadcast(previous, ip) > 0
        return False

    async def _broadcast(self, old_ip: str, new_ip: str) -> int:
        if self.bot is None or not self.alert_channels:
            log.warning("[ipmon] no client or alert channels configured; change not announced")
            return 0
        text = embeds.ip_change_alert(old_ip, new_ip, self.prefix)
        sent = 0
        for cid in sorted(self.alert_channels):
            try:
                channel = self.bot.get_channel(int(cid)) or await self.bot.fetch_channel(int(cid))
                await channel.send(text)
                sent += 1
            except Exception as e:
                log.warning("[ipmon] failed to alert channel %s: %s", cid, e)
        return sent

    # ---- lifecycle ----------------------------------------------------

    @property
    def monitoring(self) -> bool:
        return self._ticket is not None and self._ticket.active

    def start(self) -> None:
        """Immediate check, then one every `interval_hours`."""
        self.stop()
        self._ticket = self.scheduler.every(self.interval_hours * 3600, self.check, name="ip-monitor", immediate=True)
        log.info("[ipmon] monitoring started, every %.1f hour(s)", self.interval_hours)

    def stop(self) -> None:
        if self._ticket is not None:
            self._ticket.revoke()
            self.scheduler.forget(self._ticket)
            self._ticket = None

    def status(self) -> dict:
        return {
            "current_ip": self.current_ip,
            "last_checked": self.last_checked,
            "alert_channels": sorted(self.alert_channels),
            "monitoring": self.monitoring,
        }
