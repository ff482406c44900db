from sqlalchemy import Column, ForeignKey, Table, Uuid

from kyoture.db.base import Base

event_categories = Table(
    "event_categories",
    Base.metadata,
    Column("event_id", Uuid(as_uuid=True), ForeignKey("events.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", Uuid(as_uuid=True), ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
)

event_tags = Table(
    "event_tags",
    Base.metadata,
    Column("event_id", Uuid(as_uuid=True), ForeignKey("events.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Uuid(as_uuid=True), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)
