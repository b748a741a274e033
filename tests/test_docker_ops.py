"""
Docker Backend Tests

Error translation, payload parsing and the SDK calls made by
DockerEngineClient, against a mocked low-level API client.
"""

import asyncio
import threading
from datetime import datetime, timezone
from unittest.mock import MagicMock, Mock

import docker
import pytest
import requests

from dockrs.core import docker_ops
from dockrs.core.config import Settings
from dockrs.core.docker_ops import (
    DockerEngineClient, describe_container, describe_image, describe_volume,
    parse_created, translate_error
)
from dockrs.core.errors import (
    Conflict, DaemonUnreachable, ErrorKind, NotFound, PermissionDenied, Unknown
)
from dockrs.core.models import ResourceHandle, ResourceKind

CONTAINER_SUMMARY = {
    "Id": "abc123def4567890",
    "Names": ["/web"],
    "Image": "nginx:latest",
    "Command": "nginx -g 'daemon off;'",
    "Created": 1700000000,
    "State": "running",
    "Status": "Up 2 minutes",
    "Ports": [{"IP": "0.0.0.0", "PrivatePort": 80, "PublicPort": 8080, "Type": "tcp"}],
}

CONTAINER_INSPECT = {
    "Id": "abc123def4567890",
    "Name": "/web",
    "Created": "2024-01-02T03:04:05.123456789Z",
    "Path": "nginx",
    "Args": ["-g", "daemon off;"],
    "State": {"Status": "exited", "Running": False},
    "Config": {"Image": "nginx:latest"},
    "NetworkSettings": {"Ports": {"80/tcp": [{"HostIp": "", "HostPort": "8080"}], "443/tcp": None}},
}


def _api_error(status):
    return docker.errors.APIError("daemon said no", response=Mock(status_code=status))


# ==============================================================================
# Error translation
# ==============================================================================

@pytest.mark.parametrize("exc, kind", [
    (docker.errors.NotFound("No such container: abc"), ErrorKind.NOT_FOUND),
    (docker.errors.ImageNotFound("No such image: x"), ErrorKind.NOT_FOUND),
    (_api_error(404), ErrorKind.NOT_FOUND),
    (_api_error(409), ErrorKind.CONFLICT),
    (_api_error(403), ErrorKind.PERMISSION_DENIED),
    (_api_error(500), ErrorKind.UNKNOWN),
    (PermissionError(13, "Permission denied"), ErrorKind.PERMISSION_DENIED),
    (requests.exceptions.ConnectionError("refused"), ErrorKind.DAEMON_UNREACHABLE),
    (FileNotFoundError(2, "No such file", "/var/run/docker.sock"), ErrorKind.DAEMON_UNREACHABLE),
    (docker.errors.DockerException("Error while fetching server API version"), ErrorKind.DAEMON_UNREACHABLE),
    (ValueError("odd"), ErrorKind.UNKNOWN),
])
def test_translate_error(exc, kind):
    assert translate_error(exc).kind == kind


def test_translate_error_keeps_engine_errors():
    error = Conflict("busy")
    assert translate_error(error) is error


# ==============================================================================
# Payload parsing
# ==============================================================================

def test_parse_created():
    assert parse_created(None) is None
    assert parse_created(0) is None
    assert parse_created(1700000000) == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    assert parse_created("2024-01-02T03:04:05.123456789Z") == datetime(
        2024, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc
    )
    assert parse_created("2024-01-02T03:04:05Z") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert parse_created("yesterday") is None


def test_describe_container_summary():
    descriptor = describe_container(CONTAINER_SUMMARY)
    assert descriptor.handle == ResourceHandle(ResourceKind.CONTAINER, "abc123def4567890")
    assert descriptor.names == ("web",)
    assert descriptor.running
    assert descriptor.details["image"] == "nginx:latest"
    assert descriptor.details["status"] == "Up 2 minutes"
    assert descriptor.details["ports"] == "0.0.0.0:8080->80/tcp"


def test_describe_container_inspect():
    descriptor = describe_container(CONTAINER_INSPECT)
    assert descriptor.name == "web"
    assert descriptor.status == "exited"
    assert descriptor.details["command"] == "nginx -g daemon off;"
    assert descriptor.details["ports"] == "0.0.0.0:8080->80/tcp, 443/tcp"
    assert descriptor.created.microsecond == 123456


def test_describe_image_drops_untagged():
    descriptor = describe_image({"Id": "sha256:0123456789abcdef", "RepoTags": ["nginx:latest", "<none>:<none>"],
                                 "Created": 1700000000, "Size": 1125})
    assert descriptor.names == ("nginx:latest",)
    assert descriptor.handle.short_id == "0123456789ab"
    assert descriptor.size == 1125


def test_describe_volume():
    descriptor = describe_volume({"Name": "data", "Driver": "local", "Mountpoint": "/var/lib/docker/volumes/data",
                                  "UsageData": {"Size": -1}})
    assert descriptor.handle.id == "data"
    assert descriptor.size is None
    assert descriptor.details["driver"] == "local"


# ==============================================================================
# DockerEngineClient
# ==============================================================================

@pytest.fixture
def api():
    return MagicMock()


@pytest.fixture
async def client(api):
    sdk = MagicMock()
    sdk.api = api
    engine = DockerEngineClient(sdk, Settings(stop_timeout=3, stats_interval=0.01))
    yield engine
    await engine.close()


async def test_list_containers(client, api):
    api.containers.return_value = [CONTAINER_SUMMARY]

    rows = await client.list(ResourceKind.CONTAINER, filters={"status": ("running",)}, all=False)

    api.containers.assert_called_once_with(all=False, size=False, filters={"status": ["running"]})
    assert [r.name for r in rows] == ["web"]


async def test_list_volumes(client, api):
    api.volumes.return_value = {"Volumes": [{"Name": "data", "Driver": "local"}], "Warnings": None}
    assert [r.name for r in await client.list(ResourceKind.VOLUME)] == ["data"]

    api.volumes.return_value = {"Volumes": None}
    assert await client.list(ResourceKind.VOLUME) == []


async def test_inspect_dispatches_on_kind(client, api):
    api.inspect_network.return_value = {"Id": "net0123456789ab", "Name": "bridge", "Driver": "bridge"}
    descriptor = await client.inspect(ResourceHandle(ResourceKind.NETWORK, "net0123456789ab"))
    api.inspect_network.assert_called_once_with("net0123456789ab")
    assert descriptor.name == "bridge"


async def test_stop_uses_configured_timeout(client, api):
    await client.stop(ResourceHandle(ResourceKind.CONTAINER, "abc"))
    api.stop.assert_called_once_with("abc", timeout=3)


async def test_stop_rejects_non_containers(client, api):
    with pytest.raises(Unknown):
        await client.stop(ResourceHandle(ResourceKind.IMAGE, "sha256:abc"))
    api.stop.assert_not_called()


async def test_remove_translates_errors(client, api):
    api.remove_container.side_effect = _api_error(409)
    with pytest.raises(Conflict):
        await client.remove(ResourceHandle(ResourceKind.CONTAINER, "abc"), force=False)
    api.remove_container.assert_called_once_with("abc", force=False)


async def test_remove_network(client, api):
    await client.remove(ResourceHandle(ResourceKind.NETWORK, "net1"))
    api.remove_network.assert_called_once_with("net1")


async def test_ping_unreachable(client, api):
    api.ping.side_effect = requests.exceptions.ConnectionError("refused")
    with pytest.raises(DaemonUnreachable):
        await client.ping()


async def test_stream_logs(client, api):
    api.logs.return_value = iter([b"one\n", b"two\n"])
    handle = ResourceHandle(ResourceKind.CONTAINER, "abc")

    events = [e async for e in client.stream_logs(handle, tail="10")]

    api.logs.assert_called_once_with("abc", stream=True, follow=False, tail=10)
    assert [(e.sequence, e.text) for e in events] == [(1, "one\n"), (2, "two\n")]


async def test_stream_events_maps_actor(client, api):
    api.events.return_value = iter([
        {"Type": "container", "Action": "start", "timeNano": 1700000000000000000,
         "Actor": {"ID": "abc", "Attributes": {"name": "web"}}},
        {"Type": "plugin", "Action": "enable", "Actor": {"ID": "p1"}},
        {"Type": "container", "Action": "die", "time": 1700000001,
         "Actor": {"ID": "abc", "Attributes": {"name": "web"}}},
    ])

    events = [e async for e in client.stream_events({"type": ["container"]})]

    api.events.assert_called_once_with(decode=True, filters={"type": ["container"]})
    assert [(e.source.id, e.source.display_name, e.sequence) for e in events] == [("abc", "web", 1), ("abc", "web", 2)]
    assert events[0].timestamp == 1700000000.0
    assert events[1].timestamp == 1700000001


async def test_stream_stats_once(client, api):
    api.stats.return_value = {"cpu_stats": {}}
    events = [e async for e in client.stream_stats(ResourceHandle(ResourceKind.CONTAINER, "abc"), follow=False)]
    api.stats.assert_called_once_with("abc", stream=False)
    assert len(events) == 1


async def test_run_pulls_missing_image_and_removes(client, api):
    api.create_container.side_effect = [docker.errors.ImageNotFound("No such image: alpine"),
                                        {"Id": "new0123456789ab", "Warnings": None}]
    api.logs.return_value = iter([b"hello\n"])

    events = [e async for e in client.run("alpine", name="hello", remove=True)]

    api.pull.assert_called_once_with("alpine")
    api.start.assert_called_once_with("new0123456789ab")
    api.logs.assert_called_once_with("new0123456789ab", stdout=True, stderr=True, stream=True, follow=True)
    api.remove_container.assert_called_once_with("new0123456789ab", force=True)
    assert [e.text for e in events] == ["hello\n"]
    assert events[0].source.display_name == "hello"


async def test_connect_failure_is_unreachable(monkeypatch):
    def refuse(settings):
        raise docker.errors.DockerException("Error while fetching server API version: refused")

    monkeypatch.setattr(docker_ops, "_make_client", refuse)
    with pytest.raises(DaemonUnreachable):
        await DockerEngineClient.connect(Settings())


async def test_close_closes_sdk_client():
    sdk = MagicMock()
    engine = DockerEngineClient(sdk)
    await engine.close()
    sdk.close.assert_called_once_with()


def test_unknown_message_includes_status():
    error = translate_error(_api_error(500))
    assert isinstance(error, Unknown)
    assert error.message.startswith("500")


def test_not_found_message_uses_explanation():
    exc = docker.errors.NotFound("404 Client Error", explanation="No such container: abc")
    error = translate_error(exc)
    assert isinstance(error, NotFound)
    assert error.message == "No such container: abc"


def test_permission_denied_from_socket():
    assert isinstance(translate_error(PermissionError(13, "Permission denied")), PermissionDenied)


# ==============================================================================
# Cancellation while a worker is blocked reading
# ==============================================================================

class BlockingStream:
    """SDK stream whose next() blocks until close() is called, like a socket read"""

    def __init__(self, *chunks):
        self.chunks = list(chunks)
        self.reading = threading.Event()
        self.closed = threading.Event()

    def __iter__(self):
        return self

    def __next__(self):
        if self.chunks:
            return self.chunks.pop(0)
        self.reading.set()
        self.closed.wait(5)
        raise StopIteration

    def close(self):
        self.closed.set()


async def _cancel_while_blocked(stream: BlockingStream, events) -> list:
    received = []

    async def consume():
        async for event in events:
            received.append(event)

    task = asyncio.create_task(consume())
    await asyncio.get_running_loop().run_in_executor(None, stream.reading.wait, 2)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(task, 1.0)
    assert stream.closed.is_set()
    return received


async def test_cancel_logs_closes_sdk_stream(client, api):
    stream = BlockingStream(b"one\n")
    api.logs.return_value = stream

    received = await _cancel_while_blocked(
        stream, client.stream_logs(ResourceHandle(ResourceKind.CONTAINER, "abc"), follow=True)
    )

    assert [e.text for e in received] == ["one\n"]


async def test_cancel_events_closes_sdk_stream(client, api):
    stream = BlockingStream()
    api.events.return_value = stream

    assert await _cancel_while_blocked(stream, client.stream_events()) == []


async def test_cancel_run_closes_output_and_removes(client, api):
    stream = BlockingStream(b"starting\n")
    api.create_container.return_value = {"Id": "new0123456789ab", "Warnings": None}
    api.logs.return_value = stream

    received = await _cancel_while_blocked(stream, client.run("alpine", remove=True))

    assert [e.text for e in received] == ["starting\n"]
    api.attach.assert_not_called()
    api.wait.assert_not_called()
    api.remove_container.assert_called_once_with("new0123456789ab", force=True)


def test_close_stream_tolerates_generator_being_read():
    started = threading.Event()
    release = threading.Event()

    def output():
        started.set()
        release.wait(2)
        yield b"late\n"

    gen = output()
    reader = threading.Thread(target=next, args=(gen,))
    reader.start()
    started.wait(2)
    try:
        docker_ops._close_stream(gen)
    finally:
        release.set()
        reader.join(2)
