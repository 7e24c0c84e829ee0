from __future__ import annotations

import contextlib
import logging
from typing import Callable, Sequence, TypeVar

import discord

log = logging.getLogger(__name__)

T = TypeVar("T")

PageRenderer = Callable[[int, int, Sequence[str]], discord.Embed]


def paginate(entries: Sequence[T], page_size: int) -> list[list[T]]:
    """Split entries into ceil(N/page_size) ordered pages."""
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    return [list(entries[i:i + page_size]) for i in range(0, len(entries), page_size)]


class PaginatorView(discord.ui.View):
    """Previous/Next buttons over pre-rendered pages; disabled in place on timeout."""

    def __init__(self, pages: list[list[str]], render: PageRenderer, timeout: float = 180.0):
        super().__init__(timeout=timeout)
        self.pages = pages
        self.render = render
        self.index = 0
        self.message: discord.Message | None = None
        self._sync_buttons()

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def current_embed(self) -> discord.Embed:
        return self.render(self.index, self.page_count, self.pages[self.index])

    def _sync_buttons(self) -> None:
        self.prev_btn.disabled = self.index <= 0
        self.next_btn.disabled = self.index >= self.page_count - 1

    def go(self, delta: int) -> None:
        self.index = max(0, min(self.index + delta, self.page_count - 1))
        self._sync_buttons()

    @discord.ui.button(label="Previous", style=discord.ButtonStyle.primary)
    async def prev_btn(self, interaction: discord.Interaction, _: discord.ui.Button):
        self.go(-1)
        await interaction.response.edit_message(embed=self.current_embed(), view=self)

    @discord.ui.button(label="Next", style=discord.ButtonStyle.primary)
    async def next_btn(self, interaction: discord.Interaction, _: discord.ui.Button):
        self.go(1)
        await interaction.response.edit_message(embed=self.current_embed(), view=self)

    def disable_all(self) -> None:
        self.prev_btn.disabled = True
        self.next_btn.disabled = True

    async def on_timeout(self) -> None:
        self.disable_all()
        if self.message is not None:
            with contextlib.suppress(discord.HTTPException):
                await self.message.edit(view=self)


async def send_paginated(
    channel,
    entries: Sequence[str],
    page_size: int,
    render: PageRenderer,
    *,
    empty: str | discord.Embed,
    timeout: float = 180.0,
):
    """
    Post `entries` as a navigable embed. Zero entries sends `empty`
    without controls; a single page gets both buttons disabled.
    """
    if not entries:
        if isinstance(empty, discord.Embed):
            return await channel.send(embed=empty)
        return await channel.send(empty)
    view = PaginatorView(paginate(entries, page_size), render, timeout=timeout)
    view.message = await channel.send(embed=view.current_embed(), view=view)
    return view.message
