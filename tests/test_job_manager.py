import asyncio
import types

import discord
import pytest

from exceptions import ApiErrorKind, ExternalApiError
from services.job_manager import JobKind, JobManager, StartResult
from utils.guild_config import GuildConfig, GuildConfigStore
from utils.rcon_client import PlayerEntry
from utils.scheduler import Scheduler

pytestmark = pytest.mark.asyncio

BOT_ID = 999


class StubMessage:
    def __init__(self, author_id, title=None, fail_delete=False):
        self.id = id(self)
        self.author = types.SimpleNamespace(id=author_id)
        self.embeds = [discord.Embed(title=title)] if title is not None else []
        self.deleted = False
        self.fail_delete = fail_delete

    async def delete(self):
        if self.fail_delete:
            raise RuntimeError("message already gone")
        self.deleted = True


class StubChannel:
    def __init__(self, cid, history=None, history_fails=False):
        self.id = cid
        self.sent = []
        self._history = history or []
        self.history_fails = history_fails

    async def send(self, content=None, **kwargs):
        self.sent.append((content, kwargs))
        return types.SimpleNamespace(edit=None)

    async def history(self, limit=100):
        if self.history_fails:
            raise RuntimeError("missing access")
        for m in self._history[:limit]:
            yield m


class StubGuild:
    def __init__(self, gid, channels):
        self.id = gid
        self.channels = channels

    def get_channel(self, cid):
        return self.channels.get(cid)


class StubBot:
    def __init__(self, guilds=()):
        self.user = types.SimpleNamespace(id=BOT_ID)
        self._guilds = {g.id: g for g in guilds}

    def get_guild(self, gid):
        return self._guilds.get(gid)


class StubRcon:
    def __init__(self, players=None, error=None):
        self.players_list = players or []
        self.error = error
        self.calls = 0

    async def players(self, cfg):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.players_list


class StubTracker:
    def __init__(self):
        self.recorded = []

    async def record(self, entries):
        self.recorded.extend(entries)
        return len(entries)


def _store(tmp_path, **kw):
    store = GuildConfigStore(tmp_path / "guildConfig.json")
    base = dict(
        guild_id="1",
        server_id="srv-1",
        api_token="tok-1234567890",
        display_name="Main",
        rcon_terminal_channel_id="10",
        online_list_channel_id="20",
    )
    base.update(kw)
    store.save(GuildConfig(**base))
    return store


def _manager(store, guild, rcon=None, tracker=None):
    return JobManager(StubBot([guild]), store, rcon or StubRcon(), tracker or StubTracker(), Scheduler(), interval=3600)


PLAYERS = [PlayerEntry("1", "uid-a", "Smith"), PlayerEntry("2", "uid-b", "Jones")]


async def test_start_posts_and_persists_flag(tmp_path):
    store = _store(tmp_path)
    terminal = StubChannel(10)
    guild = StubGuild(1, {10: terminal})
    tracker = StubTracker()
    jobs = _manager(store, guild, StubRcon(PLAYERS), tracker)

    assert await jobs.start(guild, JobKind.AUTOLIST) is StartResult.STARTED
    assert jobs.is_running(1, JobKind.AUTOLIST)
    assert store.get(1).auto_list_enabled is True
    assert tracker.recorded == PLAYERS
    _, kwargs = terminal.sent[0]
    assert kwargs["embed"].title == "Players on Main: 2 online"
    jobs.shutdown()


async def test_start_guards(tmp_path):
    store = _store(tmp_path, online_list_channel_id=None)
    guild = StubGuild(1, {})
    jobs = _manager(store, guild)
    assert await jobs.start(guild, JobKind.COMMUNITYLIST) is StartResult.CHANNEL_NOT_CONFIGURED
    assert await jobs.start(guild, JobKind.AUTOLIST) is StartResult.CHANNEL_NOT_FOUND
    assert jobs.running() == []
    assert store.get(1).auto_list_enabled is False


async def test_second_start_is_rejected(tmp_path):
    store = _store(tmp_path)
    guild = StubGuild(1, {10: StubChannel(10)})
    rcon = StubRcon(PLAYERS)
    jobs = _manager(store, guild, rcon)
    await jobs.start(guild, JobKind.AUTOLIST)
    assert await jobs.start(guild, JobKind.AUTOLIST) is StartResult.ALREADY_RUNNING
    assert rcon.calls == 1
    jobs.shutdown()


async def test_stop_twice(tmp_path):
    store = _store(tmp_path)
    guild = StubGuild(1, {10: StubChannel(10)})
    jobs = _manager(store, guild)
    await jobs.start(guild, JobKind.AUTOLIST)
    assert jobs.stop(1, JobKind.AUTOLIST) is True
    assert jobs.stop(1, JobKind.AUTOLIST) is False
    assert not jobs.is_running(1, JobKind.AUTOLIST)
    assert store.get(1).auto_list_enabled is False


async def test_upstream_failure_posts_nothing_and_keeps_job(tmp_path):
    store = _store(tmp_path)
    terminal = StubChannel(10)
    guild = StubGuild(1, {10: terminal})
    jobs = _manager(store, guild, StubRcon(error=ExternalApiError(503, "down", ApiErrorKind.OFFLINE)))
    assert await jobs.start(guild, JobKind.AUTOLIST) is StartResult.STARTED
    assert terminal.sent == []
    assert jobs.is_running(1, JobKind.AUTOLIST)
    assert await jobs.poll_and_post(guild, JobKind.AUTOLIST) is False
    jobs.shutdown()


async def test_community_status_embed(tmp_path):
    store = _store(tmp_path)
    online = StubChannel(20)
    guild = StubGuild(1, {20: online})
    jobs = _manager(store, guild, StubRcon(PLAYERS))
    assert await jobs.poll_and_post(guild, JobKind.COMMUNITYLIST) is True
    embed = online.sent[0][1]["embed"]
    assert embed.title == "🌍 Main Community Status"
    assert "2/128" in embed.description


async def test_empty_server_posts_placeholder(tmp_path):
    store = _store(tmp_path)
    terminal = StubChannel(10)
    guild = StubGuild(1, {10: terminal})
    jobs = _manager(store, guild, StubRcon([]))
    await jobs.poll_and_post(guild, JobKind.AUTOLIST)
    assert terminal.sent[0][1]["embed"].title == "📋 Players on Main: 0 online"
    assert "view" not in terminal.sent[0][1]


async def test_cleanup_deletes_only_own_matching_posts(tmp_path):
    store = _store(tmp_path)
    own_list = StubMessage(BOT_ID, "Players on Main: 3 online")
    own_broken = StubMessage(BOT_ID, "📋 Players on Main: 0 online", fail_delete=True)
    own_other = StubMessage(BOT_ID, "🔨 Player Banned")
    foreign = StubMessage(1234, "Players on Main: 3 online")
    plain = StubMessage(BOT_ID)
    terminal = StubChannel(10, history=[own_list, own_broken, own_other, foreign, plain])
    guild = StubGuild(1, {10: terminal})
    jobs = _manager(store, guild, StubRcon(PLAYERS))

    assert await jobs.poll_and_post(guild, JobKind.AUTOLIST) is True
    assert own_list.deleted
    assert not own_other.deleted and not foreign.deleted
    assert len(terminal.sent) == 1


async def test_cleanup_survives_history_failure(tmp_path):
    store = _store(tmp_path)
    terminal = StubChannel(10, history_fails=True)
    guild = StubGuild(1, {10: terminal})
    jobs = _manager(store, guild, StubRcon(PLAYERS))
    assert await jobs.poll_and_post(guild, JobKind.AUTOLIST) is True


async def test_tick_after_config_removed_is_noop(tmp_path):
    store = GuildConfigStore(tmp_path / "guildConfig.json")
    terminal = StubChannel(10)
    guild = StubGuild(1, {10: terminal})
    rcon = StubRcon(PLAYERS)
    jobs = _manager(store, guild, rcon)
    assert await jobs.poll_and_post(guild, JobKind.AUTOLIST) is False
    assert rcon.calls == 0


async def test_restore_starts_enabled_jobs(tmp_path):
    store = _store(tmp_path, auto_list_enabled=True, community_list_enabled=True)
    store.save(GuildConfig(guild_id="2", server_id="srv-2", api_token="tok-1234567890", auto_list_enabled=True))
    guild = StubGuild(1, {10: StubChannel(10), 20: StubChannel(20)})
    jobs = _manager(store, guild, StubRcon(PLAYERS))

    assert await jobs.restore() == 2
    assert jobs.running() == [("1", JobKind.AUTOLIST), ("1", JobKind.COMMUNITYLIST)]
    # guild 2 is not visible to the bot; its flag is left alone
    assert store.get(2).auto_list_enabled is True
    jobs.shutdown()
    assert jobs.running() == []
    assert store.get(1).auto_list_enabled is True


class GatedRcon(StubRcon):
    """Holds `players()` open until the test releases it."""

    def __init__(self, players=None):
        super().__init__(players)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def players(self, cfg):
        self.entered.set()
        await self.release.wait()
        return await super().players(cfg)


async def test_stop_during_first_poll_wins(tmp_path):
    store = _store(tmp_path)
    guild = StubGuild(1, {10: StubChannel(10)})
    rcon = GatedRcon(PLAYERS)
    jobs = _manager(store, guild, rcon)

    starting = asyncio.create_task(jobs.start(guild, JobKind.AUTOLIST))
    await rcon.entered.wait()
    assert jobs.stop(1, JobKind.AUTOLIST) is True
    rcon.release.set()

    assert await starting is StartResult.CANCELLED
    assert not jobs.is_running(1, JobKind.AUTOLIST)
    assert store.get(1).auto_list_enabled is False


async def test_restart_after_cancelled_start(tmp_path):
    store = _store(tmp_path)
    guild = StubGuild(1, {10: StubChannel(10)})
    rcon = GatedRcon(PLAYERS)
    jobs = _manager(store, guild, rcon)

    starting = asyncio.create_task(jobs.start(guild, JobKind.AUTOLIST))
    await rcon.entered.wait()
    jobs.stop(1, JobKind.AUTOLIST)
    rcon.release.set()
    await starting

    assert await jobs.start(guild, JobKind.AUTOLIST) is StartResult.STARTED
    assert store.get(1).auto_list_enabled is True
    jobs.shutdown()
