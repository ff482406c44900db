from __future__ import annotations

from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from kyoture.db.models.category import Category
from kyoture.db.models.event import Event
from kyoture.db.models.tag import Tag

LookupModel = TypeVar("LookupModel", Category, Tag)


def _find_or_create(session: Session, model: type[LookupModel], names: list[str]) -> list[LookupModel]:
    resolved: list[LookupModel] = []
    seen: set[str] = set()
    for raw in names:
        name = raw.strip() if isinstance(raw, str) else ""
        if not name or name in seen:
            continue
        seen.add(name)
        row = session.scalar(select(model).where(model.name == name))
        if row is None:
            row = model(name=name)
            session.add(row)
            session.flush()
        resolved.append(row)
    return resolved


def sync_categories(session: Session, event: Event, names: list[str]) -> None:
    """Replace the event's categories with exactly `names`; an empty list clears them."""
    event.categories = _find_or_create(session, Category, names)


def sync_tags(session: Session, event: Event, names: list[str]) -> None:
    event.tags = _find_or_create(session, Tag, names)
