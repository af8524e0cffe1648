"""
auth/verification.py -- Single-use email verification codes.

A code is a capability: whoever presents it proves control of the mailbox it
was sent to. The ledger guarantees two things:

  One live code per user. issue() deletes the previous code and inserts the
      new one in the same transaction, backed by UNIQUE(user_id). A stale code
      stops working the moment its replacement exists.

  Exactly-once consumption. consume() is a single DELETE ... RETURNING. The row
      delete is the serialization point: of two concurrent consumers, the
      database lets exactly one of them remove the row, and the other sees no
      row and gets NotFound.

Layer rule: no imports from api/, users/, or mail/.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.engine import Connection, Engine

from auth.errors import NotFound
from auth.store import now_iso, scoped_connection, verification_codes_table

logger = logging.getLogger("nubereats.auth")

_codes = verification_codes_table


class VerificationLedger:
    """Issues and consumes verification codes.

    Shares the UserStore engine so both can join one transaction:
        ledger = VerificationLedger(store.engine)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def issue(self, user_id: int, *, conn: Connection | None = None) -> str:
        """Replace any live code for user_id with a fresh one and return it."""
        code = str(uuid.uuid4())
        with scoped_connection(self.engine, conn) as c:
            c.execute(_codes.delete().where(_codes.c.user_id == user_id))
            c.execute(_codes.insert().values(code=code, user_id=user_id, created_at=now_iso()))
        logger.info("Issued verification code for user %s", user_id)
        return code

    def consume(self, code: str, *, conn: Connection | None = None) -> int:
        """Delete the code and return the user id it was issued for.

        Raises NotFound if no live code matches. The caller flips the user's
        verified flag, normally in the same transaction.
        """
        with scoped_connection(self.engine, conn) as c:
            row = c.execute(_codes.delete().where(_codes.c.code == code).returning(_codes.c.user_id)).fetchone()
        if row is None:
            raise NotFound("Verification not found.")
        logger.info("Consumed verification code for user %s", row.user_id)
        return row.user_id

