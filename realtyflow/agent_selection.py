"""
Agent selection: first sufficiently-available agent wins.

Agents are tried in the order given. There is no ranking or load
balancing; callers that want fairness must sort the candidates first.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from realtyflow.availability import AvailabilityOracle
from realtyflow.db_models import DBAgent
from realtyflow.logging_config import get_logger
from realtyflow.slots import Slot

logger = get_logger(__name__)


@dataclass
class Selection:
    agent: DBAgent
    slot: Slot
    matched_preferred: bool = False


def select_agent_and_slot(
    agents: Iterable[DBAgent],
    oracle: AvailabilityOracle,
    search_from: datetime,
    preferred_time: Optional[datetime] = None,
    duration: Optional[int] = None,
    lookahead_days: Optional[int] = None,
) -> Optional[Selection]:
    """
    Pick an agent and a window.

    1. With a preferred time, the first agent free for exactly
       [preferred, preferred + duration) wins.
    2. Otherwise (or if nobody was free then), the first agent with any free
       window from `search_from` onward wins, with its earliest window.
    3. None when no agent has a window.

    `duration` defaults to each agent's own meeting duration.
    """
    agents = list(agents)

    if preferred_time is not None:
        for agent in agents:
            length = duration or agent.meeting_duration or 60
            end = preferred_time + timedelta(minutes=length)
            if oracle.is_free(agent, preferred_time, end):
                logger.info("agent_selected", agent_id=agent.id, strategy="preferred_time")
                return Selection(
                    agent=agent,
                    slot=Slot(start=preferred_time, end=end, agent_id=agent.id),
                    matched_preferred=True,
                )

    for agent in agents:
        slot = oracle.next_free(agent, search_from, duration=duration, lookahead_days=lookahead_days)
        if slot is not None:
            logger.info("agent_selected", agent_id=agent.id, strategy="next_available")
            return Selection(agent=agent, slot=slot)

    logger.info("no_agent_available", candidates=len(agents))
    return None
