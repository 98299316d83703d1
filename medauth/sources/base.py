"""Score source interface.

A source turns one :class:`~medauth.preproc.ImageInput` into a
:class:`~medauth.methods.MethodResult`. Sources are black boxes to the
fusion core: any exception they raise is treated as "method absent".
"""

from __future__ import annotations

import asyncio
import concurrent.futures as cf
from typing import Any, Dict, Optional

from ..methods import MethodResult
from ..preproc import ImageInput


class ScoreSource:
    name: str = ""
    label: str = ""

    def __init__(self, params: Optional[Dict[str, Any]] = None, enabled: bool = True):
        self.params = dict(params or {})
        self.enabled = enabled

    async def produce(self, image: ImageInput) -> MethodResult:
        raise NotImplementedError

    def __repr__(self):
        return f"{self.__class__.__name__}(name={self.name!r}, enabled={self.enabled})"


class BlockingSource(ScoreSource):
    """Source whose work is synchronous and CPU bound; runs in a thread pool."""

    executor: Optional[cf.Executor] = None

    def run(self, image: ImageInput) -> MethodResult:
        raise NotImplementedError

    async def produce(self, image: ImageInput) -> MethodResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, self.run, image)


class StaticSource(ScoreSource):
    """Returns a fixed result; used for advisory payloads gathered elsewhere."""

    def __init__(self, name: str, result: MethodResult, enabled: bool = True):
        super().__init__({}, enabled)
        self.name = name
        self.result = result

    async def produce(self, image: ImageInput) -> MethodResult:
        return self.result
