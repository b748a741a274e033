"""
Reference resolution
Turns user tokens (id, id prefix, name) into resource handles
"""

from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, Tuple

from ..utils.logger import get_logger
from .engine import EngineClient
from .errors import Ambiguous, Cancelled, NotFound
from .models import BatchOutcome, Candidate, ResourceDescriptor, ResourceHandle, ResourceKind

logger = get_logger("resolver")

# Receives the candidates and whether several may be picked
Selector = Callable[[Sequence[Candidate], bool], Awaitable[List[Candidate]]]


def _id_forms(descriptor: ResourceDescriptor) -> Tuple[str, ...]:
    resource_id = descriptor.handle.id
    if resource_id.startswith("sha256:"):
        return resource_id, resource_id.split(":", 1)[1]
    return (resource_id,)


def _name_forms(descriptor: ResourceDescriptor) -> Tuple[str, ...]:
    names = list(descriptor.names)
    if descriptor.kind == ResourceKind.IMAGE:
        # "nginx" refers to "nginx:latest"
        names.extend(n[: -len(":latest")] for n in descriptor.names if n.endswith(":latest"))
    return tuple(names)


def match_tiers(token: str, descriptors: Iterable[ResourceDescriptor]) -> List[List[Candidate]]:
    """Split descriptors into the exact id, id prefix and exact name tiers"""
    exact, prefix, by_name = [], [], []
    for descriptor in descriptors:
        ids = _id_forms(descriptor)
        if token in ids:
            exact.append(Candidate(descriptor.handle, descriptor.label(), matched=True))
        elif any(i.startswith(token) for i in ids):
            prefix.append(Candidate(descriptor.handle, descriptor.label(), matched=False))
        elif token in _name_forms(descriptor):
            by_name.append(Candidate(descriptor.handle, descriptor.label(), matched=True))
    return [exact, prefix, by_name]


def match(token: str, descriptors: Iterable[ResourceDescriptor]) -> List[Candidate]:
    """Candidates of the first non-empty tier: id > id prefix > name"""
    if not token:
        return []
    for tier in match_tiers(token, descriptors):
        if tier:
            return tier
    return []


def as_candidates(descriptors: Iterable[ResourceDescriptor]) -> List[Candidate]:
    return [Candidate(d.handle, d.label()) for d in descriptors]


class Resolver:
    """Resolve tokens of one resource kind against the daemon's listing.

    With ``selector`` set, ambiguous tokens (and an empty token list) are
    handed to the operator; without it they fail with Ambiguous.
    """

    def __init__(self, client: EngineClient, kind: ResourceKind, selector: Optional[Selector] = None):
        self.client = client
        self.kind = kind
        self.selector = selector
        self._listing: Optional[List[ResourceDescriptor]] = None

    @property
    def interactive(self) -> bool:
        return self.selector is not None

    async def candidates(self) -> List[ResourceDescriptor]:
        if self._listing is None:
            self._listing = await self.client.list(self.kind)
            logger.debug("Fetched %d %s for resolution", len(self._listing), self.kind.plural)
        return self._listing

    async def _pick(self, candidates: Sequence[Candidate], multiple: bool) -> List[ResourceHandle]:
        picked = await self.selector(candidates, multiple)
        return [c.handle for c in picked]

    async def resolve(self, token: str, single: bool = False) -> List[ResourceHandle]:
        """Resolve one token to its handle(s).

        Returns exactly one handle unless the operator picked several from
        an ambiguous match. ``single`` enforces one target even then.
        """
        matches = match(token, await self.candidates())
        logger.debug("Token %r matched %d %s", token, len(matches), self.kind.plural)

        if not matches:
            raise NotFound(f"no {self.kind.value} matches '{token}'")
        if len(matches) == 1:
            return [matches[0].handle]
        if not self.interactive:
            raise Ambiguous(token, matches)

        handles = await self._pick(matches, not single)
        if single and len(handles) > 1:
            raise Ambiguous(token, [c for c in matches if c.handle in handles])
        return handles

    async def resolve_one(self, token: str) -> ResourceHandle:
        """Resolve a token for a command that takes exactly one target"""
        handles = await self.resolve(token, single=True)
        if len(handles) != 1:
            raise Cancelled("nothing selected")
        return handles[0]

    async def pick(self, multiple: bool = True) -> List[ResourceHandle]:
        """Let the operator choose among every resource of the kind"""
        descriptors = await self.candidates()
        if not descriptors:
            raise NotFound(f"no {self.kind.plural} to choose from")
        if not self.interactive:
            raise Ambiguous("", as_candidates(descriptors))
        return await self._pick(as_candidates(descriptors), multiple)

    async def resolve_all(self, tokens: Sequence[str]) -> Tuple[List[ResourceHandle], List[BatchOutcome]]:
        """Resolve many tokens; failures are returned as outcomes, not raised.

        A token that cannot be resolved yields a failed outcome whose handle
        carries the token itself as id. With no tokens the operator picks.
        Cancelled and DaemonUnreachable still propagate.
        """
        if not tokens:
            return await self.pick(multiple=True), []

        handles: List[ResourceHandle] = []
        failures: List[BatchOutcome] = []
        for token in tokens:
            try:
                resolved = await self.resolve(token)
            except (NotFound, Ambiguous) as e:
                failures.append(BatchOutcome.failure(ResourceHandle(self.kind, token, token), e))
                continue
            for handle in resolved:
                if handle not in handles:
                    handles.append(handle)
        return handles, failures
