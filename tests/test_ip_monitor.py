import asyncio
import json

import pytest

from exceptions import ApiErrorKind, ExternalApiError
from services.ip_monitor import IPMonitor

pytestmark = pytest.mark.asyncio


class StubChannel:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send(self, content=None, **_):
        if self.fail:
            raise RuntimeError("missing access")
        self.sent.append(content)


class StubBot:
    def __init__(self, channels):
        self.channels = channels

    def get_channel(self, cid):
        return self.channels.get(cid)

    async def fetch_channel(self, cid):
        raise LookupError(cid)


def _monitor(tmp_path, bot, ips, **kw):
    mon = IPMonitor(tmp_path / "ip.json", "https://ip.test", 5.0, bot=bot, **kw)
    seq = iter(ips)

    async def fake_fetch():
        ip = next(seq)
        if ip is None:
            raise ExternalApiError(None, "down", ApiErrorKind.NETWORK)
        return ip

    mon.fetch_ip = fake_fetch
    return mon


async def test_alerts_once_per_change(tmp_path):
    ch = StubChannel()
    mon = _monitor(tmp_path, StubBot({10: ch}), ["1.1.1.1", "1.1.1.1", "2.2.2.2", "2.2.2.2", "2.2.2.2", "3.3.3.3"])
    mon.add_channel(10)
    results = [await mon.check() for _ in range(6)]
    assert results == [False, False, True, False, False, True]
    assert len(ch.sent) == 2
    assert "`1.1.1.1`" in ch.sent[0] and "`2.2.2.2`" in ch.sent[0]
    assert "`!checkip`" in ch.sent[0]


async def test_alert_uses_configured_prefix(tmp_path):
    ch = StubChannel()
    mon = _monitor(tmp_path, StubBot({10: ch}), ["1.1.1.1", "2.2.2.2"], prefix="?")
    mon.add_channel(10)
    await mon.check()
    assert await mon.check() is True
    assert "`?checkip`" in ch.sent[0]
    assert "`!checkip`" not in ch.sent[0]


async def test_failed_fetch_keeps_state(tmp_path):
    mon = _monitor(tmp_path, StubBot({}), ["1.1.1.1", None])
    await mon.check()
    assert await mon.check() is False
    assert mon.current_ip == "1.1.1.1"


async def test_one_failing_channel_does_not_block_others(tmp_path):
    good = StubChannel()
    mon = _monitor(tmp_path, StubBot({1: StubChannel(fail=True), 2: good, 3: None}), ["1.1.1.1", "9.9.9.9"])
    for cid in (1, 2, 3):
        mon.add_channel(cid)
    await mon.check()
    assert await mon.check() is True
    assert len(good.sent) == 1


async def test_state_persists_across_instances(tmp_path):
    mon = _monitor(tmp_path, StubBot({}), ["4.4.4.4"])
    assert mon.add_channel(77) is True
    assert mon.add_channel(77) is False
    await mon.check()
    raw = json.loads((tmp_path / "ip.json").read_text(encoding="utf-8"))
    assert raw["currentIP"] == "4.4.4.4"
    assert raw["alertChannels"] == ["77"]
    assert raw["lastChecked"]

    again = IPMonitor(tmp_path / "ip.json", "https://ip.test", 5.0)
    assert again.current_ip == "4.4.4.4"
    assert again.remove_channel("77") is True
    assert again.remove_channel("77") is False
    status = again.status()
    assert status["alert_channels"] == [] and status["monitoring"] is False


async def test_start_and_stop(tmp_path):
    mon = _monitor(tmp_path, StubBot({}), ["5.5.5.5"] * 3)
    mon.start()
    assert mon.monitoring
    ticket = mon._ticket
    await asyncio.sleep(0.01)
    mon.stop()
    await ticket.wait_idle()
    assert not mon.monitoring
    assert mon.current_ip == "5.5.5.5"
