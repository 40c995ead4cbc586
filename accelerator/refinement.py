"""Chat-based refinement of a single work item.

The refined text is returned to the caller; the item itself is not modified.
"""
from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from accelerator.llm import LLMClient
from accelerator.models import ChatMessage, Startup, StartupReadinessLevel
from accelerator.prompts import REFINE_KEYS, REFINE_SEPARATOR, build_base_context, refine_prompt
from accelerator.services import get_or_raise, get_work_item, require_proposal
from accelerator.utils import json_parse, strip_code_fences

log = logging.getLogger(__name__)

USER = "User"
AI = "Ai"


def chat_history(session: Session, kind: str, item_id: int) -> list[ChatMessage]:
    get_work_item(session, kind, item_id)
    return list(session.execute(
        select(ChatMessage).where(ChatMessage.item_kind == kind, ChatMessage.item_id == item_id)
        .order_by(ChatMessage.id)
    ).scalars().all())


def message_dict(message: ChatMessage) -> dict:
    return {
        "id": message.id, "role": message.role, "content": message.content,
        "refined": json_parse(message.refined_json, {}),
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }


def split_reply(kind: str, reply: str) -> tuple[dict[str, Any], str]:
    """Split an AI reply into ``(refined fields, commentary)`` at the separator."""
    head, _, commentary = reply.partition(REFINE_SEPARATOR)
    head = strip_code_fences(head)
    if kind in REFINE_KEYS:
        parsed = json_parse(head, {})
        if not isinstance(parsed, dict):
            parsed = {}
        refined = {k: str(parsed[k]) for k in REFINE_KEYS[kind] if parsed.get(k)}
    else:
        refined = {"refinedDescription": head} if head else {}
    return refined, commentary.strip()


async def refine_item(
    session: Session, kind: str, item_id: int, latest_prompt: str, client: LLMClient | None = None,
) -> dict[str, Any]:
    """Ask the AI to refine an item and record both sides of the exchange."""
    item = get_work_item(session, kind, item_id)
    startup = get_or_raise(session, Startup, item.startup_id, "Startup")
    proposal = require_proposal(startup)
    levels = session.execute(
        select(StartupReadinessLevel).where(StartupReadinessLevel.startup_id == startup.id)
    ).scalars().all()
    history = chat_history(session, kind, item_id)

    if client is None:
        client = LLMClient()
    reply = await client.generate_text(
        refine_prompt(build_base_context(proposal, levels), item, history, latest_prompt)
    )
    refined, commentary = split_reply(kind, reply)
    if not refined:
        log.warning("Refinement reply for %s %d had no refined content: %s", kind, item_id, reply[:500])

    session.add(ChatMessage(item_kind=kind, item_id=item_id, role=USER, content=latest_prompt))
    session.add(ChatMessage(
        item_kind=kind, item_id=item_id, role=AI, content=commentary,
        refined_json=json.dumps(refined),
    ))
    session.commit()
    return {"kind": kind, "item_id": item_id, **refined, "commentary": commentary}
