from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

log = logging.getLogger(__name__)


class GuildConfig(BaseModel):
    """Per-guild settings; serialized with the camelCase keys of guildConfig.json."""

    model_config = ConfigDict(populate_by_name=True)

    guild_id: str = Field(alias="guildId")
    server_id: str = Field(default="", alias="serverId")
    api_token: str = Field(default="", alias="apiToken")
    ban_log_channel_id: Optional[str] = Field(default=None, alias="banLogChannelId")
    online_list_channel_id: Optional[str] = Field(default=None, alias="onlineListChannelId")
    rcon_terminal_channel_id: Optional[str] = Field(default=None, alias="rconTerminalChannelId")
    auto_list_enabled: bool = Field(default=False, alias="autoListEnabled")
    community_list_enabled: bool = Field(default=False, alias="communityListEnabled")
    display_name: Optional[str] = Field(default=None, alias="displayName")

    @property
    def is_ready(self) -> bool:
        return bool(self.server_id and self.api_token)

    @property
    def label(self) -> str:
        return self.display_name or self.server_id


# field names accepted by `update_field`, keyed by JSON alias as well
_FIELDS = {name: name for name in GuildConfig.model_fields}
_FIELDS.update({f.alias: name for name, f in GuildConfig.model_fields.items() if f.alias})


class GuildConfigStore:
    """
    JSON object keyed by guild id, rewritten wholesale on every change.
    There is no locking: two writers racing can drop one update.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read_raw(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as e:
            log.error("[config] cannot read %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_raw(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def _parse(self, guild_id: str, raw: Any) -> GuildConfig | None:
        if not isinstance(raw, dict):
            return None
        try:
            return GuildConfig.model_validate({**raw, "guildId": str(guild_id)})
        except PydanticValidationError as e:
            log.warning("[config] skipping malformed entry for guild %s: %s", guild_id, e)
            return None

    def all(self) -> dict[str, GuildConfig]:
        out: dict[str, GuildConfig] = {}
        for gid, raw in self._read_raw().items():
            cfg = self._parse(gid, raw)
            if cfg is not None:
                out[gid] = cfg
        return out

    def get(self, guild_id: str | int) -> GuildConfig | None:
        gid = str(guild_id)
        return self._parse(gid, self._read_raw().get(gid))

    def save(self, config: GuildConfig) -> None:
        data = self._read_raw()
        data[config.guild_id] = config.model_dump(by_alias=True, exclude={"guild_id"})
        self._write_raw(data)
        log.info("[config] saved guild %s", config.guild_id)

    def update_field(self, guild_id: str | int, field: str, value: Any) -> GuildConfig:
        name = _FIELDS.get(field)
        if name is None or name == "guild_id":
            raise KeyError(field)
        gid = str(guild_id)
        cfg = self.get(gid) or GuildConfig(guild_id=gid)
        cfg = cfg.model_copy(update={name: value})
        self.save(cfg)
        return cfg

    def set_enabled(self, guild_id: str | int, flag: str, enabled: bool) -> None:
        cfg = self.get(guild_id)
        if cfg is None:
            log.warning("[config] no config for guild %s; %s not persisted", guild_id, flag)
            return
        if getattr(cfg, flag) == enabled:
            return
        self.save(cfg.model_copy(update={flag: enabled}))
        log.info("[config] guild %s %s=%s", guild_id, flag, enabled)

    def enabled(self, flag: str) -> list[GuildConfig]:
        return [cfg for cfg in self.all().values() if getattr(cfg, flag)]
