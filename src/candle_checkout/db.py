#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""Persistence for processed webhook events.

The service keeps no order data of its own; the payment and shipping
processors own every order record. The one thing stored locally is the set of
checkout-session ids whose fulfillment has already been claimed, so that a
redelivered `checkout.session.completed` event cannot buy a second label or
resend emails.

Key features include:
- `DatabaseManager`: Handles asynchronous engine initialization and session
  factory setup for the events database.
- WAL Mode: Enables SQLite Write-Ahead Logging so concurrent workers can share
  the file.
- `claim_session`: Atomic check-and-insert keyed by the session id.
"""

import datetime
import logging
from typing import Optional

from sqlalchemy import Column
from sqlalchemy import String
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

EventBase = declarative_base()


class DatabaseManager:
  """Manages the events database engine and sessions."""

  def __init__(self) -> None:
    self.engine: Optional[AsyncEngine] = None
    self.session_factory: Optional[sessionmaker] = None

  @property
  def initialized(self) -> bool:
    return self.session_factory is not None

  async def init_db(self, path: str) -> None:
    """Initializes the database engine and creates tables."""
    url = f"sqlite+aiosqlite:///{path}"
    self.engine = create_async_engine(url, echo=False)

    async with self.engine.connect() as conn:
      await conn.execute(text("PRAGMA journal_mode=WAL"))

    self.session_factory = sessionmaker(
        self.engine, expire_on_commit=False, class_=AsyncSession
    )

    async with self.engine.begin() as conn:
      await conn.run_sync(EventBase.metadata.create_all)

  async def close(self) -> None:
    """Closes the database engine."""
    if self.engine:
      await self.engine.dispose()
    self.engine = None
    self.session_factory = None


# Global manager instance (to be initialized via lifespan)
manager = DatabaseManager()


class ProcessedSession(EventBase):
  __tablename__ = "processed_sessions"

  session_id = Column(String, primary_key=True)
  event_id = Column(String, nullable=True)
  claimed_at = Column(String)


# --- Data Access Helpers ---


async def claim_session(
    session: AsyncSession, session_id: str, event_id: Optional[str] = None
) -> bool:
  """Marks a checkout session as processed if nobody has claimed it yet.

  The primary key makes the insert the atomic check: a second claim for the
  same id fails with an integrity error.

  Args:
    session: The database session to use.
    session_id: The checkout session id from the payment event.
    event_id: The id of the event that carried it, for auditing.

  Returns:
    True if this call claimed the session, False if it was already claimed.
  """
  session.add(
      ProcessedSession(
          session_id=session_id,
          event_id=event_id,
          claimed_at=datetime.datetime.now(datetime.timezone.utc).isoformat(),
      )
  )
  try:
    await session.commit()
  except IntegrityError:
    await session.rollback()
    logger.info("Checkout session %s was already processed", session_id)
    return False
  return True


async def get_processed_session(
    session: AsyncSession, session_id: str
) -> Optional[ProcessedSession]:
  """Retrieves the claim record for a checkout session, if any."""
  return await session.get(ProcessedSession, session_id)
