"""
Tests for the custom channels file watcher.
"""
import asyncio
import os

import pytest

from iptv_addon.services.file_watcher import CustomFileWatcher, FileChangeEvent


def touch(path, mtime: float):
    os.utime(path, (mtime, mtime))


class TestCheck:

    @pytest.mark.asyncio
    async def test_no_event_without_change(self, tmp_path):
        path = tmp_path / "custom-channels.json"
        path.write_text("{}")
        queue = asyncio.Queue()
        watcher = CustomFileWatcher(str(path), queue, interval=60)
        await watcher.start()
        try:
            assert watcher.check() is False
            assert queue.empty()
        finally:
            await watcher.stop()

    @pytest.mark.asyncio
    async def test_modification_posts_event(self, tmp_path):
        path = tmp_path / "custom-channels.json"
        path.write_text("{}")
        touch(path, 1_000_000)
        queue = asyncio.Queue()
        watcher = CustomFileWatcher(str(path), queue, interval=60)
        await watcher.start()
        try:
            touch(path, 1_000_010)
            assert watcher.check() is True
        finally:
            await watcher.stop()

        event = queue.get_nowait()
        assert isinstance(event, FileChangeEvent)
        assert event.mtime == 1_000_010

    @pytest.mark.asyncio
    async def test_creation_and_removal_are_changes(self, tmp_path):
        path = tmp_path / "custom-channels.json"
        queue = asyncio.Queue()
        watcher = CustomFileWatcher(str(path), queue, interval=60)
        await watcher.start()
        try:
            path.write_text("{}")
            assert watcher.check() is True
            path.unlink()
            assert watcher.check() is True
        finally:
            await watcher.stop()

        assert queue.qsize() == 2
        queue.get_nowait()
        assert queue.get_nowait().mtime is None


class TestPolling:

    @pytest.mark.asyncio
    async def test_poll_loop_detects_change(self, tmp_path):
        path = tmp_path / "custom-channels.json"
        path.write_text("{}")
        touch(path, 1_000_000)
        queue = asyncio.Queue()
        watcher = CustomFileWatcher(str(path), queue, interval=0.01)
        await watcher.start()
        try:
            touch(path, 1_000_020)
            event = await asyncio.wait_for(queue.get(), timeout=1)
        finally:
            await watcher.stop()

        assert event.path == str(path)
