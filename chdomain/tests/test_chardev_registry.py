from __future__ import annotations

import threading

import pytest

from chdomain.chardev import CharDeviceRegistry
from chdomain.errors import ConsoleBusyError


class FakeStream:
    def __init__(self, fail: bool = False):
        self.closed = False
        self.fail = fail

    def close(self):
        self.closed = True
        if self.fail:
            raise OSError("broken pipe")


class TestCharDeviceRegistry:
    def test_open_and_close(self):
        reg = CharDeviceRegistry()
        stream = FakeStream()
        reg.open("/dev/pts/3", stream)
        assert reg.active_paths() == ["/dev/pts/3"]
        assert reg.close("/dev/pts/3") is stream
        assert reg.active_paths() == []
        assert stream.closed is False

    def test_close_unknown_path(self):
        assert CharDeviceRegistry().close("/dev/pts/9") is None

    def test_second_open_busy(self):
        reg = CharDeviceRegistry()
        reg.open("/dev/pts/3", FakeStream())
        with pytest.raises(ConsoleBusyError) as exc:
            reg.open("/dev/pts/3", FakeStream())
        assert "/dev/pts/3" in exc.value.message

    def test_force_closes_previous(self):
        reg = CharDeviceRegistry()
        first, second = FakeStream(), FakeStream()
        reg.open("/dev/pts/3", first)
        reg.open("/dev/pts/3", second, force=True)
        assert first.closed is True
        assert reg.close("/dev/pts/3") is second

    def test_free_closes_all(self):
        reg = CharDeviceRegistry()
        streams = [FakeStream(), FakeStream(fail=True), object()]
        for i, s in enumerate(streams):
            reg.open(f"/dev/pts/{i}", s)
        reg.free()
        assert streams[0].closed and streams[1].closed
        assert reg.active_paths() == []

    def test_concurrent_open_single_winner(self):
        reg = CharDeviceRegistry()
        barrier = threading.Barrier(8)
        results = []

        def worker():
            barrier.wait()
            try:
                reg.open("/tmp/console.sock", FakeStream())
                results.append("ok")
            except ConsoleBusyError:
                results.append("busy")

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("ok") == 1
        assert results.count("busy") == 7
