"""
Like counter for questions.

The default path reads the current count and writes back count + 1 in two
separate round trips. Two concurrent likes may read the same value and both
write the same result, so one increment can be lost. Setting
`ATOMIC_LIKE_INCREMENT` switches to a single conditional update instead.
"""

from __future__ import annotations

import logging

from famhub.relational import QUESTION_AUTHOR, QUESTIONS_TABLE, RelationalClient

logger = logging.getLogger(__name__)


def like_question(db: RelationalClient, question_id: str, *, atomic: bool = False) -> dict:
    """
    Increment a question's like_count by one.

    Args:
        db: Relational store holding the questions table.
        question_id: Id of the question to like.
        atomic: Use a single-statement increment instead of read-modify-write.

    Returns:
        dict: The updated question with its author's id and name embedded
            under "user".

    Raises:
        NotFoundError: If no question has this id.
        AdapterError: If the store rejects the read or the write.
    """
    filters = {"id": question_id}
    if atomic:
        return db.increment(
            QUESTIONS_TABLE, filters, "like_count", embed=[QUESTION_AUTHOR]
        )

    current = db.fetch_single(QUESTIONS_TABLE, filters)
    new_count = (current.get("like_count") or 0) + 1
    logger.debug(
        "Question %s like_count %s -> %s", question_id, current.get("like_count"), new_count
    )
    return db.update(
        QUESTIONS_TABLE, filters, {"like_count": new_count}, embed=[QUESTION_AUTHOR]
    )
