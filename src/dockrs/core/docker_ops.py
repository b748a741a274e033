"""
Docker operations
Engine client backed by the Docker SDK low-level API client
"""

import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterator, List, Optional, Sequence

import docker
import requests

from ..utils.logger import get_logger
from .config import Settings
from .engine import EngineClient, Filters
from .errors import (
    Conflict, DaemonUnreachable, EngineError, NotFound, PermissionDenied, Unknown
)
from .models import ResourceDescriptor, ResourceHandle, ResourceKind, StreamEvent, short_id

logger = get_logger("engine")

# Blocking SDK calls and open streams each hold one worker thread
MAX_WORKERS = 64

_END = object()


def _explain(exc: Exception) -> str:
    explanation = getattr(exc, "explanation", None)
    if explanation:
        return str(explanation)
    return str(exc)


def translate_error(exc: Exception) -> EngineError:
    """Map a Docker SDK / requests exception onto the engine error taxonomy"""
    if isinstance(exc, EngineError):
        return exc

    if isinstance(exc, docker.errors.NotFound):
        return NotFound(_explain(exc))

    if isinstance(exc, docker.errors.APIError):
        status = exc.status_code
        if status == 404:
            return NotFound(_explain(exc))
        if status == 409:
            return Conflict(_explain(exc))
        if status in (401, 403):
            return PermissionDenied(_explain(exc))
        return Unknown(f"{status}: {_explain(exc)}" if status else _explain(exc))

    if isinstance(exc, PermissionError):
        return PermissionDenied(f"permission denied talking to the daemon: {exc}")

    if isinstance(exc, (requests.exceptions.ConnectionError, ConnectionError, FileNotFoundError)):
        return DaemonUnreachable(f"cannot connect to the Docker daemon: {exc}")

    if isinstance(exc, docker.errors.DockerException):
        message = str(exc)
        if "permission denied" in message.lower():
            return PermissionDenied(message)
        if "connection" in message.lower() or "fetching server api version" in message.lower():
            return DaemonUnreachable(message)
        return Unknown(message)

    return Unknown(f"{type(exc).__name__}: {exc}")


def _close_stream(stream: Any) -> None:
    """Close a CancellableStream so a reader blocked in another thread wakes up"""
    close = getattr(stream, "close", None)
    if close is None:
        return
    try:
        close()
    except OSError as e:
        logger.debug("Stream already closed: %s", e)
    except ValueError as e:
        # A plain generator cannot be closed while a worker is inside next()
        logger.warning("Stream could not be closed while being read: %s", e)


def parse_created(value: Any) -> Optional[datetime]:
    """Parse a daemon timestamp: epoch seconds or RFC 3339 with nanoseconds"""
    if value in (None, "", 0):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)

    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    if "." in text:
        head, rest = text.split(".", 1)
        digits = ""
        for ch in rest:
            if not ch.isdigit():
                break
            digits += ch
        text = f"{head}.{digits[:6]}{rest[len(digits):]}"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable timestamp: %r", value)
        return None


def _format_summary_ports(ports: List[Dict[str, Any]]) -> str:
    mappings = []
    for port in ports or []:
        private = f"{port.get('PrivatePort')}/{port.get('Type', 'tcp')}"
        if port.get("PublicPort"):
            ip = port.get("IP") or "0.0.0.0"
            mappings.append(f"{ip}:{port['PublicPort']}->{private}")
        else:
            mappings.append(private)
    return ", ".join(dict.fromkeys(mappings))


def _format_inspect_ports(ports: Optional[Dict[str, Any]]) -> str:
    mappings = []
    if ports and isinstance(ports, dict):
        for container_port, bindings in ports.items():
            if bindings and isinstance(bindings, list):
                for binding in bindings:
                    if isinstance(binding, dict) and binding.get("HostPort"):
                        ip = binding.get("HostIp") or "0.0.0.0"
                        mappings.append(f"{ip}:{binding['HostPort']}->{container_port}")
            else:
                mappings.append(container_port)
    return ", ".join(dict.fromkeys(mappings))


def describe_container(attrs: Dict[str, Any]) -> ResourceDescriptor:
    """Build a descriptor from either a list summary or an inspect payload"""
    if attrs.get("Names"):
        names = tuple(n.lstrip("/") for n in attrs["Names"])
    elif attrs.get("Name"):
        names = (attrs["Name"].lstrip("/"),)
    else:
        names = ()

    state = attrs.get("State")
    if isinstance(state, dict):
        status = state.get("Status", "")
        status_text = status
    else:
        status = state or ""
        status_text = attrs.get("Status") or status

    config = attrs.get("Config") or {}
    if config:
        image = config.get("Image", "")
        command = " ".join([attrs.get("Path", "")] + list(attrs.get("Args") or [])).strip()
        ports = _format_inspect_ports((attrs.get("NetworkSettings") or {}).get("Ports"))
    else:
        image = attrs.get("Image", "")
        command = attrs.get("Command", "")
        ports = _format_summary_ports(attrs.get("Ports"))

    handle = ResourceHandle(ResourceKind.CONTAINER, attrs["Id"], names[0] if names else short_id(attrs["Id"]))
    return ResourceDescriptor(
        handle=handle,
        names=names,
        status=status,
        created=parse_created(attrs.get("Created")),
        size=attrs.get("SizeRw"),
        details={"image": image, "command": command, "status": status_text, "ports": ports},
        attrs=attrs,
    )


def describe_image(attrs: Dict[str, Any]) -> ResourceDescriptor:
    tags = tuple(t for t in (attrs.get("RepoTags") or []) if t != "<none>:<none>")
    handle = ResourceHandle(ResourceKind.IMAGE, attrs["Id"], tags[0] if tags else short_id(attrs["Id"]))
    return ResourceDescriptor(
        handle=handle,
        names=tags,
        created=parse_created(attrs.get("Created")),
        size=attrs.get("Size"),
        details={"tags": ", ".join(tags) or "<none>", "containers": str(attrs.get("Containers", ""))},
        attrs=attrs,
    )


def describe_volume(attrs: Dict[str, Any]) -> ResourceDescriptor:
    name = attrs["Name"]
    usage = attrs.get("UsageData") or {}
    return ResourceDescriptor(
        handle=ResourceHandle(ResourceKind.VOLUME, name, name),
        names=(name,),
        created=parse_created(attrs.get("CreatedAt")),
        size=usage.get("Size") if usage.get("Size", -1) >= 0 else None,
        details={
            "driver": attrs.get("Driver", ""),
            "mountpoint": attrs.get("Mountpoint", ""),
            "scope": attrs.get("Scope", ""),
        },
        attrs=attrs,
    )


def describe_network(attrs: Dict[str, Any]) -> ResourceDescriptor:
    name = attrs.get("Name", "")
    return ResourceDescriptor(
        handle=ResourceHandle(ResourceKind.NETWORK, attrs["Id"], name or short_id(attrs["Id"])),
        names=(name,) if name else (),
        created=parse_created(attrs.get("Created")),
        details={"driver": attrs.get("Driver", ""), "scope": attrs.get("Scope", "")},
        attrs=attrs,
    )


DESCRIBERS = {
    ResourceKind.CONTAINER: describe_container,
    ResourceKind.IMAGE: describe_image,
    ResourceKind.VOLUME: describe_volume,
    ResourceKind.NETWORK: describe_network,
}


def _make_client(settings: Settings) -> docker.DockerClient:
    if settings.docker_host:
        return docker.DockerClient(base_url=settings.docker_host, timeout=settings.api_timeout)
    return docker.from_env(timeout=settings.api_timeout)


class DockerEngineClient(EngineClient):
    """Engine client talking to a real daemon.

    The Docker SDK is blocking, so every call runs on a private thread pool
    and is awaited from the event loop. Streams hold a worker for as long
    as they stay open and are closed from the loop on cancellation.
    """

    def __init__(self, client: docker.DockerClient, settings: Optional[Settings] = None,
                 executor: Optional[ThreadPoolExecutor] = None):
        self._client = client
        self._api = client.api
        self._settings = settings or Settings()
        self._executor = executor or ThreadPoolExecutor(max_workers=MAX_WORKERS, thread_name_prefix="dockrs")

    @classmethod
    async def connect(cls, settings: Optional[Settings] = None) -> "DockerEngineClient":
        settings = settings or Settings()
        executor = ThreadPoolExecutor(max_workers=MAX_WORKERS, thread_name_prefix="dockrs")
        loop = asyncio.get_running_loop()
        logger.debug("Connecting to Docker daemon (%s)", settings.docker_host or "environment defaults")
        try:
            client = await loop.run_in_executor(executor, _make_client, settings)
        except Exception as e:
            executor.shutdown(wait=False)
            error = translate_error(e)
            if isinstance(error, Unknown):
                error = DaemonUnreachable(error.message)
            raise error from e
        return cls(client, settings, executor)

    async def _call(self, fn, *args, **kwargs):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, functools.partial(fn, *args, **kwargs))
        except EngineError:
            raise
        except Exception as e:
            raise translate_error(e) from e

    async def _pump(self, handle: ResourceHandle, stream: Iterator) -> AsyncIterator[StreamEvent]:
        loop = asyncio.get_running_loop()
        sequence = 0
        try:
            while True:
                try:
                    chunk = await loop.run_in_executor(self._executor, next, stream, _END)
                except Exception as e:
                    raise translate_error(e) from e
                if chunk is _END:
                    break
                sequence += 1
                yield StreamEvent(source=handle, sequence=sequence, payload=chunk)
        finally:
            _close_stream(stream)

    @staticmethod
    def _require_container(handle: ResourceHandle, operation: str) -> None:
        if handle.kind != ResourceKind.CONTAINER:
            raise Unknown(f"{operation} is only supported for containers, not {handle.kind.plural}")

    async def ping(self) -> None:
        await self._call(self._api.ping)

    async def version(self) -> Dict[str, Any]:
        return await self._call(self._api.version)

    async def list(self, kind: ResourceKind, filters: Optional[Filters] = None,
                   all: bool = True, size: bool = False) -> List[ResourceDescriptor]:
        filters = {k: list(v) for k, v in (filters or {}).items()} or None
        logger.debug("Listing %s (filters=%s)", kind.plural, filters)

        if kind == ResourceKind.CONTAINER:
            rows = await self._call(self._api.containers, all=all, size=size, filters=filters)
        elif kind == ResourceKind.IMAGE:
            rows = await self._call(self._api.images, filters=filters)
        elif kind == ResourceKind.VOLUME:
            response = await self._call(self._api.volumes, filters=filters)
            rows = (response or {}).get("Volumes") or []
        else:
            rows = await self._call(self._api.networks, filters=filters)

        return [DESCRIBERS[kind](row) for row in rows or []]

    async def inspect(self, handle: ResourceHandle) -> ResourceDescriptor:
        inspectors = {
            ResourceKind.CONTAINER: self._api.inspect_container,
            ResourceKind.IMAGE: self._api.inspect_image,
            ResourceKind.VOLUME: self._api.inspect_volume,
            ResourceKind.NETWORK: self._api.inspect_network,
        }
        attrs = await self._call(inspectors[handle.kind], handle.id)
        return DESCRIBERS[handle.kind](attrs)

    async def stop(self, handle: ResourceHandle, timeout: Optional[int] = None) -> None:
        self._require_container(handle, "stop")
        timeout = self._settings.stop_timeout if timeout is None else timeout
        logger.debug("Stopping %s (timeout=%ds)", handle, timeout)
        await self._call(self._api.stop, handle.id, timeout=timeout)

    async def remove(self, handle: ResourceHandle, force: bool = False) -> None:
        logger.debug("Removing %s (force=%s)", handle, force)
        if handle.kind == ResourceKind.CONTAINER:
            await self._call(self._api.remove_container, handle.id, force=force)
        elif handle.kind == ResourceKind.IMAGE:
            await self._call(self._api.remove_image, handle.id, force=force)
        elif handle.kind == ResourceKind.VOLUME:
            await self._call(self._api.remove_volume, handle.id, force=force)
        else:
            await self._call(self._api.remove_network, handle.id)

    async def stream_logs(self, handle: ResourceHandle, follow: bool = False,
                          tail: str = "all") -> AsyncIterator[StreamEvent]:
        self._require_container(handle, "logs")
        tail = tail if tail == "all" else int(tail)
        stream = await self._call(self._api.logs, handle.id, stream=True, follow=follow, tail=tail)
        async for event in self._pump(handle, stream):
            yield event

    async def stream_events(self, filters: Optional[Filters] = None) -> AsyncIterator[StreamEvent]:
        filters = {k: list(v) for k, v in (filters or {}).items()} or None
        stream = await self._call(self._api.events, decode=True, filters=filters)
        sequences: Dict[ResourceHandle, int] = {}
        daemon = ResourceHandle(ResourceKind.CONTAINER, "", "daemon")

        async for raw in self._pump(daemon, stream):
            event = raw.payload
            try:
                kind = ResourceKind(event.get("Type", ""))
            except ValueError:
                logger.debug("Skipping %s event", event.get("Type"))
                continue
            actor = event.get("Actor") or {}
            attributes = actor.get("Attributes") or {}
            source = ResourceHandle(kind, actor.get("ID", ""), attributes.get("name", ""))
            sequences[source] = sequences.get(source, 0) + 1
            timestamp = event.get("timeNano", 0) / 1e9 or event.get("time") or raw.timestamp
            yield StreamEvent(source=source, sequence=sequences[source], payload=event, timestamp=timestamp)

    async def stream_stats(self, handle: ResourceHandle, follow: bool = True) -> AsyncIterator[StreamEvent]:
        self._require_container(handle, "stats")
        sequence = 0
        while True:
            sample = await self._call(self._api.stats, handle.id, stream=False)
            sequence += 1
            yield StreamEvent(source=handle, sequence=sequence, payload=sample)
            if not follow:
                break
            await asyncio.sleep(self._settings.stats_interval)

    async def run(self, image: str, name: Optional[str] = None, network: Optional[str] = None,
                  volumes: Sequence[str] = (), remove: bool = False) -> AsyncIterator[StreamEvent]:
        host_config = self._api.create_host_config(binds=list(volumes) or None, network_mode=network)
        create = functools.partial(self._call, self._api.create_container, image, name=name, host_config=host_config)
        try:
            container = await create()
        except NotFound:
            logger.info("Image %s not found locally, pulling", image)
            await self._call(self._api.pull, image)
            container = await create()

        if container.get("Warnings"):
            logger.warning("Warnings while creating the container")
            for warning in container["Warnings"]:
                logger.warning("%s", warning)

        handle = ResourceHandle(ResourceKind.CONTAINER, container["Id"], name or short_id(container["Id"]))
        try:
            await self._call(self._api.start, handle.id)
            # logs(follow=True) replays from creation and returns a closable stream
            output = await self._call(self._api.logs, handle.id, stdout=True, stderr=True, stream=True, follow=True)
            async for event in self._pump(handle, output):
                yield event
            await self._call(self._api.wait, handle.id)
        finally:
            if remove:
                logger.debug("Removing %s", handle)
                await self._call(self._api.remove_container, handle.id, force=True)

    async def close(self) -> None:
        try:
            await self._call(self._client.close)
        finally:
            self._executor.shutdown(wait=False, cancel_futures=True)
