"""Provider resolution over an ordered fallback chain."""

import logging
from collections.abc import Callable

from clai.errors import NoProviderAvailable, ProviderUnavailable
from clai.providers.base import InferenceProvider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[str], InferenceProvider]


class ProviderResolver:
    """Pick one ready provider: the forced one, or the first available in the chain.

    Providers are built fresh for every resolution so no connection state is
    carried between requests. Probes report unavailability as ``False``; an
    exception raised by a probe is an infrastructure failure and propagates.
    """

    def __init__(
        self,
        chain: tuple[str, ...],
        factory: ProviderFactory,
        *,
        forced: str | None = None,
    ) -> None:
        self.chain = chain
        self.forced = forced
        self._factory = factory

    async def resolve(self) -> InferenceProvider:
        if self.forced is not None:
            provider = self._factory(self.forced)
            if not await provider.is_available():
                logger.info("Forced provider %s is unavailable", self.forced)
                raise ProviderUnavailable(self.forced)
            logger.info("Using forced provider %s", provider.name)
            return provider

        for name in self.chain:
            provider = self._factory(name)
            if await provider.is_available():
                logger.info("Resolved provider %s", provider.name)
                return provider
            logger.debug("Provider %s unavailable, trying next", name)
        raise NoProviderAvailable(self.chain)

    async def statuses(self) -> list[tuple[str, bool]]:
        names = list(self.chain)
        if self.forced is not None and self.forced not in names:
            names.insert(0, self.forced)
        results: list[tuple[str, bool]] = []
        for name in names:
            provider = self._factory(name)
            results.append((name, await provider.is_available()))
        return results
