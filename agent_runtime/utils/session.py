"""
Session Store

Persists each conversation turn of a run so it can be resumed later.

1. JSONL, one entry per appended turn
   - Append-only writes, O(1) regardless of history length
   - A corrupt line only loses that line; loading skips it

2. Memory cache + disk (dual-write)
   - Reads after the first load never touch the disk
   - Appends update the cache first, then the file

3. Session ids are URL-quoted before becoming filenames, so an id such as
   "../../etc/passwd" cannot escape the sessions directory.
"""

import json
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, Optional
from urllib.parse import quote, unquote

import aiofiles
from pydantic import BaseModel, Field, ValidationError

from agent_runtime.model.types import ContentBlock, Message
from agent_runtime.utils.logger import get_logger

log = get_logger(__name__)


class SessionEntry(BaseModel):
    """One persisted conversation turn."""

    type: Literal["user", "assistant"] = Field(..., description="Role of the turn")
    uuid: str = Field(..., description="Entry id")
    parent_uuid: Optional[str] = Field(None, description="Previous entry id")
    session_id: str = Field(..., description="Owning session")
    timestamp: str = Field(..., description="ISO-8601 write time")
    cwd: str = Field("", description="Working directory of the run")
    model: Optional[str] = Field(None, description="Model that produced the turn")
    message: Message = Field(..., description="The turn itself")


class SessionLogger:
    """
    Sink invoked once per appended turn.

    Entries are chained through ``parent_uuid`` in append order.
    """

    def __init__(
        self,
        store: "SessionStore",
        session_id: str,
        cwd: str = "",
        model: Optional[str] = None,
        parent_uuid: Optional[str] = None,
    ) -> None:
        self.store = store
        self.session_id = session_id
        self.cwd = cwd
        self.model = model
        self._last_uuid: Optional[str] = parent_uuid

    async def __call__(
        self,
        role: Literal["user", "assistant"],
        content: str | list[ContentBlock],
    ) -> str:
        # User text is stored in block form so every entry has the same shape
        if role == "user" and isinstance(content, str):
            content = [ContentBlock.text_block(content)]

        entry = SessionEntry(
            type=role,
            uuid=str(uuid.uuid4()),
            parent_uuid=self._last_uuid,
            session_id=self.session_id,
            timestamp=datetime.now(timezone.utc).isoformat(),
            cwd=self.cwd,
            model=self.model if role == "assistant" else None,
            message=Message(role=role, content=content),
        )
        await self.store.append(self.session_id, entry)
        self._last_uuid = entry.uuid
        return entry.uuid


class SessionStore:
    """Session store with memory cache and JSONL persistence."""

    def __init__(self, base_dir: str | Path) -> None:
        self.base_dir: Path = Path(base_dir)
        self._cache: dict[str, list[SessionEntry]] = {}

    def _get_path(self, session_id: str) -> Path:
        safe_id = quote(session_id, safe="")
        return self.base_dir / f"{safe_id}.jsonl"

    async def load_entries(self, session_id: str) -> list[SessionEntry]:
        """Load raw entries, cache-aside."""
        if session_id in self._cache:
            return self._cache[session_id]

        entries: list[SessionEntry] = []
        try:
            async with aiofiles.open(self._get_path(session_id), "r", encoding="utf-8") as f:
                content = await f.read()
        except FileNotFoundError:
            self._cache[session_id] = entries
            return entries

        for line_no, line in enumerate(content.split("\n"), start=1):
            if not line.strip():
                continue
            try:
                entries.append(SessionEntry.model_validate(json.loads(line)))
            except (json.JSONDecodeError, ValidationError) as e:
                log.warning(f"Skipping malformed line {line_no} of session {session_id}: {e}")

        self._cache[session_id] = entries
        return entries

    async def load(self, session_id: str) -> list[Message]:
        """Load a session's conversation for replay to the model."""
        return [entry.message for entry in await self.load_entries(session_id)]

    async def append(self, session_id: str, entry: SessionEntry) -> None:
        self._cache.setdefault(session_id, []).append(entry)

        self.base_dir.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(self._get_path(session_id), "a", encoding="utf-8") as f:
            await f.write(entry.model_dump_json() + "\n")

    def create_logger(
        self,
        session_id: str,
        cwd: str = "",
        model: Optional[str] = None,
    ) -> SessionLogger:
        """Sink for ``session_id``; continues the chain of already loaded entries."""
        loaded = self._cache.get(session_id)
        parent_uuid = loaded[-1].uuid if loaded else None
        return SessionLogger(self, session_id, cwd=cwd, model=model, parent_uuid=parent_uuid)

    def list_sessions(self) -> list[str]:
        try:
            return [unquote(f.stem) for f in self.base_dir.iterdir() if f.suffix == ".jsonl"]
        except FileNotFoundError:
            return []

    def latest_session(self) -> Optional[str]:
        """Most recently written session id, or None."""
        try:
            files = [f for f in self.base_dir.iterdir() if f.suffix == ".jsonl"]
        except FileNotFoundError:
            return None
        if not files:
            return None
        latest = max(files, key=lambda f: f.stat().st_mtime)
        return unquote(latest.stem)

    async def clear(self, session_id: str) -> None:
        self._cache.pop(session_id, None)
        try:
            self._get_path(session_id).unlink()
        except FileNotFoundError:
            pass


def new_session_id() -> str:
    return str(uuid.uuid4())


def now_ms() -> int:
    return int(time.time() * 1000)
