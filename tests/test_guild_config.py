import json

import pytest

from utils.guild_config import GuildConfig, GuildConfigStore


@pytest.fixture
def store(tmp_path):
    return GuildConfigStore(tmp_path / "data" / "guildConfig.json")


def _cfg(gid="100", **kw):
    base = dict(guild_id=gid, server_id="srv-1", api_token="tok-1234567890", rcon_terminal_channel_id="555")
    base.update(kw)
    return GuildConfig(**base)


def test_missing_file_reads_empty(store):
    assert store.all() == {}
    assert store.get("100") is None


def test_corrupt_file_reads_empty(store):
    store.path.parent.mkdir(parents=True)
    store.path.write_text("{not json", encoding="utf-8")
    assert store.all() == {}


def test_save_writes_camel_case_keys(store):
    store.save(_cfg(display_name="Main"))
    raw = json.loads(store.path.read_text(encoding="utf-8"))
    assert raw["100"]["serverId"] == "srv-1"
    assert raw["100"]["rconTerminalChannelId"] == "555"
    assert raw["100"]["displayName"] == "Main"
    assert "guildId" not in raw["100"]


def test_get_round_trips_and_label(store):
    store.save(_cfg())
    cfg = store.get(100)
    assert cfg.guild_id == "100"
    assert cfg.is_ready
    assert cfg.label == "srv-1"


def test_update_field_accepts_alias_and_name(store):
    store.save(_cfg())
    store.update_field("100", "displayName", "Friendly")
    store.update_field("100", "ban_log_channel_id", "777")
    cfg = store.get("100")
    assert cfg.display_name == "Friendly"
    assert cfg.ban_log_channel_id == "777"
    with pytest.raises(KeyError):
        store.update_field("100", "nope", 1)


def test_set_enabled_and_enabled_listing(store):
    store.save(_cfg("1"))
    store.save(_cfg("2"))
    store.set_enabled("1", "auto_list_enabled", True)
    store.set_enabled("404", "auto_list_enabled", True)  # no config: ignored
    assert [c.guild_id for c in store.enabled("auto_list_enabled")] == ["1"]
    assert store.get("404") is None


def test_other_guilds_preserved(store):
    store.save(_cfg("1"))
    store.save(_cfg("2", server_id="srv-2"))
    store.update_field("1", "server_id", "srv-9")
    assert store.get("2").server_id == "srv-2"
    assert store.get("1").server_id == "srv-9"
