from __future__ import annotations

from collections.abc import Mapping as MappingABC
from typing import Callable, Dict, Iterator, Mapping, Optional, Sequence, Type, Union

from .errors import UnknownRegistryName


Requested = Union[None, Sequence[str], Mapping[str, Callable]]


class Registry(MappingABC):
    """Immutable, ordered name -> callable mapping.

    Iteration order is the order the callables are run in, and therefore the
    column order of every table produced from a registry.
    """

    def __init__(self, entries: Mapping[str, Callable], *, kind: str):
        self._entries: Dict[str, Callable] = dict(entries)
        self.kind = kind

    def __getitem__(self, name: str) -> Callable:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def names(self) -> list:
        return list(self._entries)

    def __repr__(self) -> str:
        return f"Registry(kind={self.kind!r}, names={self.names!r})"


def build_registry(
    catalogue: Mapping[str, Callable],
    requested: Requested = None,
    *,
    kind: str,
    error: Type[UnknownRegistryName] = UnknownRegistryName,
    baseline: Optional[str] = None,
) -> Registry:
    """Resolve a requested subset of a catalogue into a Registry.

    requested:
      - None               -> the whole catalogue, in catalogue order
      - sequence of names  -> those entries, in the requested order
      - mapping            -> caller-supplied callables for catalogue names

    If `baseline` is given it is always present and always first, whatever was
    requested (including an empty request).
    """
    if isinstance(requested, str):
        requested = [requested]

    entries: Dict[str, Callable] = {}
    if requested is None:
        entries.update(catalogue)
    elif isinstance(requested, MappingABC):
        for name, fn in requested.items():
            if name not in catalogue:
                raise error(name)
            if not callable(fn):
                raise TypeError(f"{kind} {name!r} must be callable, got {type(fn).__name__}")
            entries[str(name)] = fn
    else:
        for name in requested:
            if name not in catalogue:
                raise error(name)
            entries[str(name)] = catalogue[name]

    if baseline is not None:
        if baseline not in catalogue and baseline not in entries:
            raise error(baseline)
        first = entries.pop(baseline, None) or catalogue[baseline]
        entries = {baseline: first, **entries}

    return Registry(entries, kind=kind)
