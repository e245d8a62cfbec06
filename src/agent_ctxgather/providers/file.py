"""JSON file provider - context read from disk on every gather."""

import asyncio
import json
from pathlib import Path

from .base import ContextProvider
from ..types import ContextFragment


class JsonFileProvider(ContextProvider):
    """
    Reads a JSON document from disk on every gather.

    Another process (an editor plugin, a browser bridge) keeps the file
    current; this provider only snapshots it. A top-level value that is not
    an object is wrapped as {"data": value}.
    """

    def __init__(self, name: str, path: str, **kwargs):
        super().__init__(name, **kwargs)
        self.path = Path(path)

    async def gather(self) -> ContextFragment:
        if not self.path.exists():
            raise FileNotFoundError(f"Context file not found: {self.path}")
        # Disk read runs off the event loop
        loop = asyncio.get_running_loop()
        content = await loop.run_in_executor(None, self.path.read_text)
        data = json.loads(content)
        if not isinstance(data, dict):
            data = {"data": data}
        return self.fragment(data)
