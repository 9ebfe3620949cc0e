"""
Training feedback: high-scoring listings are kept for reuse as prompt examples.

The orchestrator hands candidates to a FeedbackDispatcher, which feeds a sink
from a bounded background queue so storage never delays or fails a request.
"""
import asyncio
import inspect
import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Optional, Protocol, Union

from pydantic import BaseModel, Field

from .config import AUTO_TRAINING_THRESHOLD, FEEDBACK_QUEUE_SIZE
from .models import GenerationMode

logger = logging.getLogger(__name__)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class TrainingInput(BaseModel):
    """Snapshot of the caller's product data."""
    title: Optional[str] = None
    description: Optional[str] = None
    keywords: list[str] = Field(default_factory=list)
    category: Optional[str] = None


class TrainingOutput(BaseModel):
    """The listing that earned the score."""
    title: str
    bullets: list[str]
    description: str
    keywords: list[str]


class TrainingCandidate(BaseModel):
    """A scored listing offered to the feedback sink."""
    platform: str
    category: Optional[str] = None
    mode: GenerationMode
    seo_score: int = Field(..., ge=0, le=100)
    input: TrainingInput
    output: TrainingOutput


class TrainingExample(TrainingCandidate):
    """A stored training example."""
    example_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    created_at: str = Field(default_factory=_utcnow)
    usage_count: int = 0


class FeedbackSink(Protocol):
    """Anything that can store a candidate. May be sync or async."""

    def save_if_worthy(self, candidate: TrainingCandidate) -> Union[bool, Awaitable[bool]]:
        ...


class TrainingPool(BaseModel):
    """On-disk collection of training examples."""
    examples: list[TrainingExample] = Field(default_factory=list)

    def save(self, path: Path) -> None:
        """Save pool to JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            f.write(self.model_dump_json(indent=2))

    @classmethod
    def load(cls, path: Path) -> "TrainingPool":
        """Load pool from JSON file."""
        if not path.exists():
            return cls()
        with open(path) as f:
            data = json.load(f)
        return cls.model_validate(data)


class JsonTrainingStore:
    """
    Feedback sink persisting examples to a JSON file.

    Usage:
        store = JsonTrainingStore("results/training_examples.json")
        store.save_if_worthy(candidate)
        examples = store.get_examples("amazon", "Kitchen", limit=3)
    """

    def __init__(self, path: Union[str, Path], threshold: int = AUTO_TRAINING_THRESHOLD):
        self.path = Path(path)
        self.threshold = threshold
        self._lock = threading.Lock()
        self.pool = TrainingPool.load(self.path)

    def save_if_worthy(self, candidate: TrainingCandidate) -> bool:
        """
        Store a candidate if it scores at or above the threshold and is new.

        Returns:
            True if stored
        """
        if candidate.seo_score < self.threshold:
            return False

        with self._lock:
            if self._is_duplicate(candidate.platform, candidate.output.title):
                logger.info("[TrainingStore] Similar example already exists, skipping")
                return False

            example = TrainingExample(
                **candidate.model_dump(exclude={"category"}),
                category=candidate.category or "general",
            )
            self.pool.examples.append(example)
            self.pool.save(self.path)

        logger.info(
            f"[TrainingStore] Saved new example: {example.platform}/{example.category} "
            f"({example.seo_score}%)"
        )
        return True

    def _is_duplicate(self, platform: str, title: str) -> bool:
        return any(
            e.platform == platform and e.output.title == title for e in self.pool.examples
        )

    def get_examples(
        self,
        platform: str,
        category: Optional[str] = None,
        limit: int = 10,
    ) -> list[TrainingExample]:
        """Examples for a platform (and category, if given), best first."""
        with self._lock:
            matches = [
                e for e in self.pool.examples
                if e.platform == platform and (category is None or e.category == category)
            ]
        matches.sort(key=lambda e: e.seo_score, reverse=True)
        return matches[:limit]

    def get_best_examples(self, limit: int = 20) -> list[TrainingExample]:
        """Best examples across all platforms."""
        with self._lock:
            examples = list(self.pool.examples)
        examples.sort(key=lambda e: e.seo_score, reverse=True)
        return examples[:limit]

    def increment_usage(self, example_id: str) -> bool:
        """Bump the usage count of an example. Returns False if unknown."""
        with self._lock:
            for example in self.pool.examples:
                if example.example_id == example_id:
                    example.usage_count += 1
                    self.pool.save(self.path)
                    return True
        return False

    def get_stats(self) -> dict:
        """Total count, per-platform counts and average score."""
        with self._lock:
            examples = list(self.pool.examples)

        by_platform: dict[str, int] = {}
        for example in examples:
            by_platform[example.platform] = by_platform.get(example.platform, 0) + 1

        total = len(examples)
        return {
            "total": total,
            "by_platform": by_platform,
            "average_score": sum(e.seo_score for e in examples) / total if total else 0.0,
        }


class FeedbackDispatcher:
    """
    Fire-and-forget delivery of candidates to a sink.

    submit() never blocks: candidates go into a bounded asyncio.Queue drained
    by one worker task; a full queue drops the candidate. Sink errors are
    logged and discarded. Sync sinks run in a worker thread.

    Args:
        sink: FeedbackSink implementation
        maxsize: Queue capacity
    """

    def __init__(self, sink: FeedbackSink, maxsize: int = FEEDBACK_QUEUE_SIZE):
        self.sink = sink
        self.maxsize = maxsize
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.saved = 0
        self.failed = 0
        self.dropped = 0

    def _ensure_worker(self) -> asyncio.Queue:
        loop = asyncio.get_running_loop()
        if self._loop is not loop:
            # Queues are bound to one event loop
            self._loop = loop
            self._queue = asyncio.Queue(maxsize=self.maxsize)
            self._worker = None
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._run())
        return self._queue

    def submit(self, candidate: TrainingCandidate) -> bool:
        """
        Queue a candidate without waiting. Must be called from a running loop.

        Returns:
            False if the queue was full and the candidate was dropped
        """
        queue = self._ensure_worker()
        try:
            queue.put_nowait(candidate)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("[Feedback] Queue full, dropping training candidate")
            return False
        return True

    async def _run(self) -> None:
        queue = self._queue
        while True:
            candidate = await queue.get()
            try:
                await self._deliver(candidate)
            finally:
                queue.task_done()

    async def _deliver(self, candidate: TrainingCandidate) -> None:
        try:
            if inspect.iscoroutinefunction(self.sink.save_if_worthy):
                saved = await self.sink.save_if_worthy(candidate)
            else:
                saved = await asyncio.to_thread(self.sink.save_if_worthy, candidate)
                if inspect.isawaitable(saved):
                    saved = await saved
        except Exception as e:
            self.failed += 1
            logger.warning(f"[Feedback] Sink failed, candidate discarded: {e}")
            return

        if saved:
            self.saved += 1
            logger.info(
                f"[Feedback] High-scoring output ({candidate.seo_score}%) saved to training pool"
            )

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def drain(self) -> None:
        """Wait until every queued candidate has been delivered."""
        if self._queue is not None and self._loop is asyncio.get_running_loop():
            await self._queue.join()

    async def aclose(self) -> None:
        """Drain the queue, then stop the worker."""
        await self.drain()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
