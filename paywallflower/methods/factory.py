from collections.abc import Callable

import structlog

from paywallflower.config.settings import Settings
from paywallflower.methods.archive_today import ArchiveTodayStrategy
from paywallflower.methods.base import BypassStrategy, ManagedMethod
from paywallflower.methods.browser import BrowserStrategy
from paywallflower.methods.google_cache import GoogleCacheStrategy
from paywallflower.methods.outline import OutlineStrategy
from paywallflower.methods.twelve_ft import TwelveFtStrategy
from paywallflower.methods.wayback import WaybackStrategy

log = structlog.get_logger()

# The complete set of strategies the service can run, in registration order
_STRATEGIES: dict[str, Callable[[Settings], BypassStrategy]] = {
    ArchiveTodayStrategy.name: lambda s: ArchiveTodayStrategy(user_agent=s.user_agent),
    TwelveFtStrategy.name: lambda s: TwelveFtStrategy(user_agent=s.user_agent),
    OutlineStrategy.name: lambda s: OutlineStrategy(user_agent=s.user_agent),
    GoogleCacheStrategy.name: lambda s: GoogleCacheStrategy(user_agent=s.user_agent),
    WaybackStrategy.name: lambda s: WaybackStrategy(user_agent=s.user_agent),
    BrowserStrategy.name: lambda s: BrowserStrategy(),
}


def available_strategies() -> list[str]:
    return list(_STRATEGIES)


def create_method(name: str, settings: Settings) -> ManagedMethod:
    """Create a managed method for a strategy name, applying any configured override."""
    factory = _STRATEGIES.get(name)
    if factory is None:
        raise KeyError(f"Unknown bypass strategy: {name}")

    method = ManagedMethod(factory(settings))
    override = settings.method_overrides.get(name)
    if override:
        method.update_config(**override.model_dump(exclude_none=True))
    return method


def create_methods(settings: Settings) -> list[ManagedMethod]:
    unknown = set(settings.method_overrides) - set(_STRATEGIES)
    if unknown:
        log.warning("unknown_method_overrides", methods=sorted(unknown))
    return [create_method(name, settings) for name in _STRATEGIES]
