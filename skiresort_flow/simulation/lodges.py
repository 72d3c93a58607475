"""Guest bookkeeping for lodges."""

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from skiresort_flow.model.lodge import Lodge

logger = logging.getLogger(__name__)


class LodgeOccupancy:
    """Which agents are inside which lodge.

    Example:
        lodges = LodgeOccupancy()
        if lodges.try_enter(lodge=lodge, agent_id=4):
            ...
        lodges.leave(lodge_id=lodge.id, agent_id=4)
    """

    def __init__(self) -> None:
        self._guests: dict[int, set[int]] = {}

    def guests(self, lodge_id: int) -> int:
        return len(self._guests.get(lodge_id, ()))

    def has_space(self, lodge: "Lodge") -> bool:
        return self.guests(lodge.id) < lodge.capacity

    def try_enter(self, lodge: "Lodge", agent_id: int) -> bool:
        """Admit an agent if the lodge has space.

        Returns:
            True if the agent is now inside, False if the lodge is full.
        """
        guests = self._guests.setdefault(lodge.id, set())
        if agent_id in guests:
            return True
        if len(guests) >= lodge.capacity:
            logger.debug(f"Lodge {lodge.id} full ({len(guests)}/{lodge.capacity}), agent {agent_id} turned away")
            return False
        guests.add(agent_id)
        return True

    def leave(self, lodge_id: int | None, agent_id: int) -> None:
        """Remove an agent from a lodge (no-op if it is not inside)."""
        if lodge_id is None:
            return
        guests = self._guests.get(lodge_id)
        if guests is not None:
            guests.discard(agent_id)

    def lodge_ids(self) -> list[int]:
        """Lodges that have (or had) guests."""
        return list(self._guests)

    def drop_lodge(self, lodge_id: int) -> set[int]:
        """Forget a removed lodge and return the agents that were inside."""
        return self._guests.pop(lodge_id, set())

    def clear(self) -> None:
        self._guests.clear()

    def __repr__(self) -> str:
        return f"LodgeOccupancy({ {k: len(v) for k, v in self._guests.items() if v} })"
