from kyoture.db.models.category import Category
from kyoture.db.models.event import Event
from kyoture.db.models.event_link import EventLink
from kyoture.db.models.image import Image
from kyoture.db.models.price import Price
from kyoture.db.models.schedule import Schedule
from kyoture.db.models.tag import Tag
from kyoture.db.models.venue import Venue

__all__ = [
    "Event",
    "Venue",
    "Schedule",
    "Price",
    "Category",
    "Tag",
    "Image",
    "EventLink",
]
