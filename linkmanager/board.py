"""
Board controller: owns the current ``BoardState`` and keeps it persisted.

Every mutation is written to the local cache straight away and pushed to the
API once edits have been quiet for ``delay`` seconds. A failed push is
logged and dropped; the cache still holds the latest state.
"""
import json
import logging
import threading
from datetime import date
from typing import Callable, List, Optional, Sequence, Tuple

import requests
from pydantic import ValidationError

from . import ordering
from .client import ClientError, DataClient
from .config import SAVE_DELAY_SECONDS
from .models import UNCATEGORIZED, Category, Dataset, Link, SubLink
from .ordering import ALL, BoardState, ItemKind
from .storage import KeyValueStore, backup_filename

logger = logging.getLogger(__name__)

CACHE_KEY = "link-manager-data"


class Debouncer:
    """Runs the last scheduled callback once no new call arrived for ``delay`` seconds."""

    def __init__(self, delay: float):
        self.delay = delay
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._pending: Optional[Callable[[], None]] = None

    def schedule(self, fn: Callable[[], None]):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._pending = fn
            self._timer = threading.Timer(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _take(self) -> Optional[Callable[[], None]]:
        with self._lock:
            fn, self._pending = self._pending, None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            return fn

    def _fire(self):
        fn = self._take()
        if fn is not None:
            fn()

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def flush(self):
        fn = self._take()
        if fn is not None:
            fn()

    def cancel(self):
        self._take()


class Board:
    def __init__(self, client: DataClient, cache: KeyValueStore, delay: float = SAVE_DELAY_SECONDS):
        self.client = client
        self.cache = cache
        self.state = BoardState()
        self._saver = Debouncer(delay)

    # --- loading and saving ---

    def load(self) -> BoardState:
        self._saver.cancel()
        self.state = BoardState.from_dataset(self._load_dataset())
        return self.state

    def _load_dataset(self) -> Dataset:
        try:
            raw = self.client.fetch()
        except (ClientError, requests.RequestException) as exc:
            logger.warning("API unavailable (%s), using local cache", exc)
            return self._fallback_dataset()
        if "categories" not in raw:
            return ordering.seed_dataset()
        try:
            return Dataset.model_validate(raw)
        except ValidationError as exc:
            logger.warning("API document unreadable (%d errors), using local cache", exc.error_count())
            return self._fallback_dataset()

    def _fallback_dataset(self) -> Dataset:
        cached = self.cache.get(CACHE_KEY)
        if cached is None:
            return ordering.seed_dataset()
        try:
            return Dataset.model_validate(cached)
        except ValidationError:
            logger.warning("local cache unreadable, using seed data")
            return ordering.seed_dataset()

    def _commit(self, state: BoardState):
        changed = (state.categories, state.links) != (self.state.categories, self.state.links)
        self.state = state
        if changed:
            self.cache.put(CACHE_KEY, state.to_dataset().to_wire())
            self._saver.schedule(self._push)

    def _push(self):
        dataset = self.state.to_dataset()
        try:
            self.client.push(dataset)
        except (ClientError, requests.RequestException) as exc:
            logger.warning("save dropped: %s", exc)

    @property
    def save_pending(self) -> bool:
        return self._saver.pending

    def flush(self):
        self._saver.flush()

    def close(self):
        self.flush()

    # --- queries ---

    @property
    def categories(self) -> List[Category]:
        return ordering.sort_by_order(self.state.categories)

    @property
    def links(self) -> List[Link]:
        return list(self.state.links)

    def search(self, query: str = "", scope: str = ALL) -> List[Link]:
        return ordering.search(self.state, query, scope)

    def groups(self, query: str = "") -> List[Tuple[Optional[Category], List[Link]]]:
        return ordering.group_links(self.state, query)

    # --- editing ---

    def add_category(self, name: str) -> Category:
        self._commit(ordering.add_category(self.state, name))
        return self.state.categories[-1]

    def rename_category(self, category_id: str, name: str):
        self._commit(ordering.rename_category(self.state, category_id, name))

    def delete_category(self, category_id: str):
        self._commit(ordering.delete_category(self.state, category_id))

    def add_link(
        self,
        title: str,
        url: str,
        category_id: str = UNCATEGORIZED,
        description: Optional[str] = None,
        sub_links: Optional[Sequence[SubLink]] = None,
    ) -> Link:
        self._commit(
            ordering.save_link(self.state, title, url, category_id, description, sub_links)
        )
        return self.state.links[-1]

    def update_link(
        self,
        link_id: str,
        title: str,
        url: str,
        category_id: str = UNCATEGORIZED,
        description: Optional[str] = None,
        sub_links: Optional[Sequence[SubLink]] = None,
    ):
        self._commit(
            ordering.save_link(
                self.state, title, url, category_id, description, sub_links, link_id=link_id
            )
        )

    def delete_link(self, link_id: str):
        self._commit(ordering.delete_link(self.state, link_id))

    # --- drag and drop ---

    def begin_drag(self, kind: ItemKind, item_id: str):
        self.state = ordering.begin_drag(self.state, kind, item_id)

    def drag_over(
        self,
        target_id: str,
        target_kind: ItemKind,
        pointer_x: Optional[float] = None,
        left: float = 0.0,
        width: float = 0.0,
    ):
        self.state = ordering.drag_over(self.state, target_id, target_kind, pointer_x, left, width)

    def drop(self, target_id: str, target_kind: ItemKind):
        self._commit(ordering.apply_drop(self.state, target_id, target_kind))

    def end_drag(self):
        self.state = ordering.end_drag(self.state)

    # --- backups ---

    def export_backup(self, day: Optional[date] = None) -> Tuple[str, str]:
        text = json.dumps(self.state.to_dataset().to_wire(), indent=2, ensure_ascii=False)
        return backup_filename(day), text

    def import_backup(self, text: str) -> bool:
        """Replace everything with a backup; anything that isn't one is ignored."""
        try:
            parsed = json.loads(text)
        except ValueError:
            logger.warning("backup import ignored: not JSON")
            return False
        if not isinstance(parsed, dict) or "categories" not in parsed or "links" not in parsed:
            logger.warning("backup import ignored: categories/links missing")
            return False
        try:
            dataset = Dataset.model_validate(parsed)
        except ValidationError:
            logger.warning("backup import ignored: invalid dataset")
            return False
        self._commit(ordering.replace_dataset(self.state, dataset))
        return True
