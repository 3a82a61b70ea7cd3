from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from ..models.records import ParsedSource


class ParserAdapter(ABC):
    language: str
    extensions: tuple[str, ...] = ()

    @abstractmethod
    def parse(self, source: str, path: str, module: str) -> ParsedSource:
        """Return declarations, identifiers and labels recognized in the given source."""


class ParserRegistry:
    def __init__(self) -> None:
        self._registry: dict[str, ParserAdapter] = {}

    def register(self, adapter: ParserAdapter) -> None:
        for extension in adapter.extensions:
            self._registry[extension.lower()] = adapter

    def get(self, extension: str) -> ParserAdapter:
        try:
            return self._registry[extension.lower()]
        except KeyError as exc:
            raise ValueError(f"No parser registered for {extension}") from exc

    def find(self, extension: str) -> Optional[ParserAdapter]:
        return self._registry.get(extension.lower())

    def extensions(self) -> Iterable[str]:
        return sorted(self._registry)
