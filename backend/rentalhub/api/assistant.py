"""
Support chatbot (LLM answers require ANTHROPIC_API_KEY).
Without a key, or when the API call fails, a rule-based reply is returned.
"""
import logging
import os

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from rentalhub.core.site_settings import get_site_settings
from rentalhub.core.support_chat import (
    analyze_intent,
    build_client_context,
    build_system_prompt,
    rule_based_reply,
)
from rentalhub.db.database import get_db
from rentalhub.utils.settings_loader import get_assistant_settings

logger = logging.getLogger(__name__)

router = APIRouter()


class AssistantQuery(BaseModel):
    message: str
    client_id: int | None = None

    @field_validator("message")
    @classmethod
    def not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("The message cannot be empty.")
        if len(v) > 2000:
            raise ValueError("The message may not be longer than 2000 characters.")
        return v


class AssistantResponse(BaseModel):
    answer: str
    source: str
    intent: str


def _ask_llm(system_prompt: str, message: str) -> str:
    import anthropic

    settings = get_assistant_settings()
    client = anthropic.Anthropic(api_key=os.getenv("ANTHROPIC_API_KEY"))
    reply = client.messages.create(
        model=settings.get("model", "claude-sonnet-4-6"),
        max_tokens=settings.get("max_tokens", 500),
        system=system_prompt,
        messages=[{"role": "user", "content": message}],
    )
    return reply.content[0].text


@router.post("/ask", response_model=AssistantResponse)
def ask_assistant(query: AssistantQuery, db: Session = Depends(get_db)):
    settings = get_assistant_settings()
    ctx = build_client_context(
        db,
        query.client_id,
        featured_limit=settings.get("featured_limit", 5),
        site=get_site_settings(db),
    )
    intent = analyze_intent(query.message)

    if os.getenv("ANTHROPIC_API_KEY"):
        try:
            answer = _ask_llm(build_system_prompt(ctx), query.message)
            return AssistantResponse(answer=answer, source="anthropic", intent=intent)
        except Exception as e:
            logger.error("Assistant API call failed, using rule-based reply: %s", e)

    return AssistantResponse(
        answer=rule_based_reply(query.message, ctx), source="rule-based", intent=intent
    )


@router.get("/faq")
def get_faq():
    """Return a list of common rental questions and answers."""
    return [
        {
            "question": "How is my monthly rent determined?",
            "answer": (
                "The monthly rent always matches the property's estimated monthly rate "
                "at the time the contract is created or renewed."
            ),
        },
        {
            "question": "Can I renew a contract that has expired?",
            "answer": (
                "Yes. Renewing an expired contract with a new end date in the future "
                "makes it active again. Terminated or ended contracts cannot be renewed."
            ),
        },
        {
            "question": "What does 'Almost Due Date' mean?",
            "answer": "Your contract ends in exactly five days. 'Due Soon' means one to four days.",
        },
        {
            "question": "Why can't I book a property that shows as Rented?",
            "answer": "A property can only have one active rental contract at a time.",
        },
    ]
