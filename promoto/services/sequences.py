"""Promoto — Monotonic Counters.

Public identifiers (restaurant rid, opportunity pk) end up in tracking URLs,
so they must never be handed out twice, even after the row that held one is
deleted. They come from a counter row raised with a single UPDATE, which
holds the row lock until the caller commits.
"""

from sqlalchemy import update
from sqlmodel import Session, select

from promoto.models.entities import Counter

RESTAURANT_RID = "restaurant_rid"


def opportunity_pk_counter(restaurant_id: str) -> str:
    return f"opportunity_pk:{restaurant_id}"


def allocate(session: Session, name: str, floor: int = 0) -> int:
    """Next value of counter `name`, always above `floor`.

    floor is the highest value already in use, so rows written before the
    counter existed are never collided with. Nothing is committed here.
    """
    result = session.exec(
        update(Counter).where(Counter.name == name).values(value=Counter.value + 1)
    )
    if result.rowcount == 0:
        session.add(Counter(name=name, value=floor + 1))
        session.flush()
        return floor + 1

    value = session.exec(select(Counter.value).where(Counter.name == name)).one()
    if value <= floor:
        value = floor + 1
        session.exec(update(Counter).where(Counter.name == name).values(value=value))
    return value
