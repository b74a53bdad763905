"""
Ordering engine for the link board.

Every function here is a pure transition: it takes a ``BoardState`` (or plain
lists of models) and returns a new one, leaving its input untouched. The
board controller owns the current state and persists whatever comes back.

Order values are only compared, never trusted to be contiguous. Any reorder
first lays the list out by ``order`` (stable), moves the item, and then
renumbers every entry to its position, starting at 0. Link renumbering runs
over the whole flat list, not per category; views always sort within a
single scope so the numbers of other categories shifting is invisible.
"""
import uuid
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple, TypeVar

from pydantic import BaseModel, Field

from .models import UNCATEGORIZED, Category, Dataset, Link, SubLink, now_ms

ALL = "ALL"


class ItemKind(str, Enum):
    CATEGORY = "CATEGORY"
    LINK = "LINK"


class DropPosition(str, Enum):
    BEFORE = "BEFORE"
    AFTER = "AFTER"


class DragItem(BaseModel):
    kind: ItemKind
    id: str


class DragState(BaseModel):
    dragged: Optional[DragItem] = None
    over_id: Optional[str] = None
    position: Optional[DropPosition] = None


class BoardState(BaseModel):
    categories: List[Category] = Field(default_factory=list)
    links: List[Link] = Field(default_factory=list)
    drag: DragState = Field(default_factory=DragState)

    @classmethod
    def from_dataset(cls, dataset: Dataset) -> "BoardState":
        return cls(categories=list(dataset.categories), links=list(dataset.links))

    def to_dataset(self) -> Dataset:
        return Dataset(categories=list(self.categories), links=list(self.links))


T = TypeVar("T", Category, Link)


def new_id(prefix: str = "") -> str:
    return f"{prefix}{uuid.uuid4().hex[:12]}"


def sort_by_order(items: Iterable[T]) -> List[T]:
    return sorted(items, key=lambda item: item.order)


def _renumber(items: Sequence[T]) -> List[T]:
    return [
        item if item.order == idx else item.model_copy(update={"order": idx})
        for idx, item in enumerate(items)
    ]


def _next_order(items: Sequence[T]) -> int:
    return max((item.order for item in items), default=-1) + 1


def _index_of(items: Sequence[T], item_id: str) -> int:
    return next((i for i, item in enumerate(items) if item.id == item_id), -1)


# --- filtering ---


def scoped_links(state: BoardState, scope: str = ALL) -> List[Link]:
    """Links visible in a sidebar scope: ALL, a category id, or uncategorized.

    A link whose category no longer exists counts as uncategorized.
    """
    if scope == ALL:
        return list(state.links)
    if scope == UNCATEGORIZED:
        known = {c.id for c in state.categories}
        return [l for l in state.links if l.category_id not in known]
    return [l for l in state.links if l.category_id == scope]


def matches(link: Link, query: str) -> bool:
    q = query.lower()
    return (
        q in link.title.lower()
        or q in link.url.lower()
        or q in (link.description or "").lower()
        or any(q in sub.title.lower() for sub in link.sub_links)
    )


def filter_links(links: Iterable[Link], query: str = "") -> List[Link]:
    if not query.strip():
        return sort_by_order(links)
    return sort_by_order(l for l in links if matches(l, query))


def search(state: BoardState, query: str = "", scope: str = ALL) -> List[Link]:
    return filter_links(scoped_links(state, scope), query)


def group_links(
    state: BoardState, query: str = ""
) -> List[Tuple[Optional[Category], List[Link]]]:
    """The "all links" view: every category in order, then leftovers (category None)."""
    groups: List[Tuple[Optional[Category], List[Link]]] = [
        (cat, filter_links(scoped_links(state, cat.id), query))
        for cat in sort_by_order(state.categories)
    ]
    leftovers = filter_links(scoped_links(state, UNCATEGORIZED), query)
    if leftovers:
        groups.append((None, leftovers))
    return groups


# --- drag and drop ---


def begin_drag(state: BoardState, kind: ItemKind, item_id: str) -> BoardState:
    drag = DragState(dragged=DragItem(kind=kind, id=item_id))
    return state.model_copy(update={"drag": drag})


def drop_position(pointer_x: float, left: float, width: float) -> DropPosition:
    return DropPosition.BEFORE if pointer_x < left + width / 2 else DropPosition.AFTER


def drag_over(
    state: BoardState,
    target_id: str,
    target_kind: ItemKind,
    pointer_x: Optional[float] = None,
    left: float = 0.0,
    width: float = 0.0,
) -> BoardState:
    dragged = state.drag.dragged
    if dragged is None:
        return state
    position = None
    # only link-over-link hovers pick a side; everything else just highlights
    if dragged.kind == ItemKind.LINK and target_kind == ItemKind.LINK and pointer_x is not None:
        position = drop_position(pointer_x, left, width)
    drag = state.drag.model_copy(update={"over_id": target_id, "position": position})
    return state.model_copy(update={"drag": drag})


def end_drag(state: BoardState) -> BoardState:
    return state.model_copy(update={"drag": DragState()})


def move_category(categories: Sequence[Category], dragged_id: str, target_id: str) -> List[Category]:
    items = sort_by_order(categories)
    old_index = _index_of(items, dragged_id)
    new_index = _index_of(items, target_id)
    if old_index == -1 or new_index == -1 or dragged_id == target_id:
        return list(categories)
    moved = items.pop(old_index)
    items.insert(new_index, moved)
    return _renumber(items)


def move_link(
    links: Sequence[Link],
    dragged_id: str,
    target_id: str,
    position: Optional[DropPosition] = None,
) -> List[Link]:
    items = sort_by_order(links)
    dragged_index = _index_of(items, dragged_id)
    target_index = _index_of(items, target_id)
    if dragged_index == -1 or target_index == -1 or dragged_index == target_index:
        return list(links)

    target = items[target_index]
    moved = items.pop(dragged_index).model_copy(update={"category_id": target.category_id})

    insert_at = _index_of(items, target_id)
    if position == DropPosition.AFTER:
        insert_at += 1
    items.insert(insert_at, moved)
    return _renumber(items)


def recategorize(links: Sequence[Link], link_id: str, category_id: str) -> List[Link]:
    return [
        l.model_copy(update={"category_id": category_id}) if l.id == link_id else l
        for l in links
    ]


def apply_drop(state: BoardState, target_id: str, target_kind: ItemKind) -> BoardState:
    """Finish a drag on ``target_id``; the drag state is always cleared."""
    dragged = state.drag.dragged
    done = end_drag(state)
    if dragged is None:
        return done

    if dragged.kind == ItemKind.CATEGORY and target_kind == ItemKind.CATEGORY:
        return done.model_copy(
            update={"categories": move_category(state.categories, dragged.id, target_id)}
        )

    if dragged.kind == ItemKind.LINK:
        if _index_of(state.links, dragged.id) == -1:
            return done
        if target_kind == ItemKind.LINK:
            links = move_link(state.links, dragged.id, target_id, state.drag.position)
        else:
            links = recategorize(state.links, dragged.id, target_id)
        return done.model_copy(update={"links": links})

    return done


# --- editing ---


def add_category(state: BoardState, name: str, category_id: Optional[str] = None) -> BoardState:
    cat = Category(
        id=category_id or new_id("cat_"),
        name=name,
        order=_next_order(state.categories),
    )
    return state.model_copy(update={"categories": [*state.categories, cat]})


def rename_category(state: BoardState, category_id: str, name: str) -> BoardState:
    categories = [
        c.model_copy(update={"name": name}) if c.id == category_id else c
        for c in state.categories
    ]
    return state.model_copy(update={"categories": categories})


def delete_category(state: BoardState, category_id: str) -> BoardState:
    """Drop a category; its links move to uncategorized, none are deleted."""
    categories = [c for c in state.categories if c.id != category_id]
    links = [
        l.model_copy(update={"category_id": UNCATEGORIZED}) if l.category_id == category_id else l
        for l in state.links
    ]
    return state.model_copy(update={"categories": categories, "links": links})


def save_link(
    state: BoardState,
    title: str,
    url: str,
    category_id: str = UNCATEGORIZED,
    description: Optional[str] = None,
    sub_links: Optional[Sequence[SubLink]] = None,
    link_id: Optional[str] = None,
) -> BoardState:
    """Create a link, or update the one with ``link_id``.

    Editing keeps id, createdAt and order; only the submitted fields change.
    An unknown ``link_id`` leaves the state as it is.
    """
    fields = {
        "title": title,
        "url": url,
        "category_id": category_id,
        "description": description,
        "sub_links": [SubLink.model_validate(s) for s in sub_links or []],
    }
    if link_id is not None:
        if _index_of(state.links, link_id) == -1:
            return state
        links = [l.model_copy(update=fields) if l.id == link_id else l for l in state.links]
        return state.model_copy(update={"links": links})

    link = Link(id=new_id(), created_at=now_ms(), order=_next_order(state.links), **fields)
    return state.model_copy(update={"links": [*state.links, link]})


def delete_link(state: BoardState, link_id: str) -> BoardState:
    return state.model_copy(update={"links": [l for l in state.links if l.id != link_id]})


def replace_dataset(state: BoardState, dataset: Dataset) -> BoardState:
    return BoardState.from_dataset(dataset).model_copy(update={"drag": state.drag})


def seed_dataset() -> Dataset:
    created = now_ms()
    return Dataset(
        categories=[
            Category(id="cat_dev", name="Development", order=0),
            Category(id="cat_design", name="Design", order=1),
            Category(id="cat_news", name="Reading", order=2),
        ],
        links=[
            Link(
                id="link_1",
                title="GitHub",
                url="https://github.com",
                description="Where the world builds software.",
                category_id="cat_dev",
                created_at=created,
                order=0,
                sub_links=[
                    SubLink(id="sub_1", title="Issues", url="https://github.com/issues"),
                    SubLink(id="sub_2", title="Pull Requests", url="https://github.com/pulls"),
                ],
            ),
            Link(
                id="link_2",
                title="React",
                url="https://react.dev",
                description="The library for web and native user interfaces.",
                category_id="cat_dev",
                created_at=created,
                order=1,
            ),
            Link(
                id="link_3",
                title="Figma",
                url="https://www.figma.com",
                description="Collaborative interface design tool.",
                category_id="cat_design",
                created_at=created,
                order=0,
            ),
        ],
    )
