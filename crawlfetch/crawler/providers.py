"""
Value providers for options that may be fixed or computed on each use.

Proxy lists and inter-request delays can be configured either as plain
values or as callables; both are wrapped in a provider and resolved fresh
every time they are needed.
"""

import random
from typing import Any, Callable, List, Optional


class Provider:
    """Something that yields a configuration value on demand."""

    def get(self) -> Any:
        raise NotImplementedError


class StaticProvider(Provider):
    """Always yields the same value."""

    def __init__(self, value: Any):
        self.value = value

    def get(self) -> Any:
        return self.value

    def __repr__(self) -> str:
        return f"StaticProvider({self.value!r})"


class CallableProvider(Provider):
    """Invokes a function each time a value is needed."""

    def __init__(self, func: Callable[[], Any]):
        self.func = func

    def get(self) -> Any:
        return self.func()

    def __repr__(self) -> str:
        return f"CallableProvider({self.func!r})"


def as_provider(value: Any) -> Provider:
    """Wrap *value* in a provider unless it already is one."""
    if isinstance(value, Provider):
        return value
    if callable(value):
        return CallableProvider(value)
    return StaticProvider(value)


def choose_proxy(provider: Provider, rng: Optional[random.Random] = None) -> Optional[str]:
    """
    Resolve the proxy list and pick one entry uniformly at random.

    Returns None when no proxies are configured.
    """
    proxies = provider.get()
    if proxies is None:
        return None
    if isinstance(proxies, str):
        proxies: List[str] = [proxies]
    else:
        proxies = list(proxies)
    if not proxies:
        return None
    return (rng or random).choice(proxies)


def resolve_delay(provider: Provider) -> float:
    """Resolve a delay provider to seconds."""
    value = provider.get()
    if value is None:
        return 0.0
    return float(value)
