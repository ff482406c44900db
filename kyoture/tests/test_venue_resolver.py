from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from kyoture.db.base import Base
from kyoture.db.models.venue import Venue
from kyoture.domain.schemas.event import VenueInput
from kyoture.services.persist.venues import clean_venue_name, resolve_venue


def _make_session():
    engine = create_engine("sqlite:///:memory:", future=True)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, future=True)()


def test_clean_venue_name_strips_source_labels() -> None:
    assert clean_venue_name("Venue : Blue Note") == "Blue Note"
    assert clean_venue_name("会場：京都コンサートホール") == "京都コンサートホール"
    assert clean_venue_name("  Place:   Club   Metro ") == "Club Metro"
    assert clean_venue_name("Venue Hall") == "Venue Hall"


def test_resolve_venue_reuses_case_insensitive_match() -> None:
    session = _make_session()

    first = resolve_venue(session, VenueInput(name="Venue : Blue Note", city="Kyoto"))
    second = resolve_venue(session, VenueInput(name="blue note"))

    assert first == second
    venues = session.scalars(select(Venue)).all()
    assert len(venues) == 1
    assert venues[0].name == "Blue Note"
    assert venues[0].city == "Kyoto"


def test_resolve_venue_without_name_returns_none() -> None:
    session = _make_session()
    assert resolve_venue(session, VenueInput(name="  ")) is None
    assert session.scalars(select(Venue)).all() == []
