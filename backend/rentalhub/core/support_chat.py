"""
Support chatbot context and the rule-based fallback used when no LLM is
configured or the LLM call fails.
"""
import re
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rentalhub.core.errors import NotFound
from rentalhub.core.rental_lifecycle import compute_remarks
from rentalhub.models.client import Client
from rentalhub.models.property import Property
from rentalhub.models.rental import STATUS_ACTIVE, Rental
from rentalhub.utils.settings_loader import format_currency

INTENTS = [
    ("rental_inquiry", re.compile(r"\b(rentals?|rent|property|properties|lease)\b", re.I)),
    ("payment_inquiry", re.compile(r"\b(payment|pay|due|bill|invoice)\b", re.I)),
    ("account_inquiry", re.compile(r"\b(account|profile|email|verify|update)\b", re.I)),
    ("support_inquiry", re.compile(r"\b(contact|support|help|call|phone)\b", re.I)),
    ("greeting", re.compile(r"\b(hi|hello|hey|good morning|good afternoon|good evening)\b", re.I)),
    ("thanks", re.compile(r"\b(thank|thanks)\b", re.I)),
    ("browse_properties", re.compile(r"\b(browse|find|search|available|looking for)\b", re.I)),
]


@dataclass
class RentalSummary:
    rental_id: int
    property_name: str
    monthly_rent: str
    start_date: str
    end_date: str
    remaining_days: int | None
    remarks: str


@dataclass
class ChatContext:
    client_id: int | None = None
    client_name: str = "there"
    client_email: str | None = None
    account_status: str = "guest"
    total_rentals: int = 0
    rentals: list[RentalSummary] = field(default_factory=list)
    featured: list[str] = field(default_factory=list)
    active_rentals_count: int = 0
    contact_email: str | None = None
    contact_phone: str | None = None

    @property
    def active_rentals(self) -> int:
        return len(self.rentals)


def build_client_context(
    db: Session,
    client_id: int | None,
    featured_limit: int = 5,
    site: dict | None = None,
) -> ChatContext:
    site = site or {}
    ctx = ChatContext(
        contact_email=site.get("contact_email"),
        contact_phone=site.get("contact_phone"),
    )

    if client_id is not None:
        client = db.get(Client, client_id)
        if client is None:
            raise NotFound("Client", client_id)
        ctx.client_id = client.id
        ctx.client_name = client.name
        ctx.client_email = client.email
        ctx.account_status = "active" if client.is_active else "inactive"
        ctx.total_rentals = len(client.rentals)
        for rental in client.rentals:
            if rental.status != STATUS_ACTIVE:
                continue
            ctx.rentals.append(
                RentalSummary(
                    rental_id=rental.id,
                    property_name=rental.property.property_name,
                    monthly_rent=format_currency(rental.monthly_rent),
                    start_date=rental.start_date.isoformat(),
                    end_date=rental.end_date.isoformat() if rental.end_date else "Ongoing",
                    remaining_days=rental.remaining_days,
                    remarks=compute_remarks(rental.end_date),
                )
            )

    featured = db.scalars(
        select(Property).where(Property.is_featured.is_(True)).limit(featured_limit)
    )
    for prop in featured:
        rate = format_currency(prop.estimated_monthly) if prop.estimated_monthly is not None else "N/A"
        ctx.featured.append(f"{prop.property_name} (ID {prop.id}): {rate}, status={prop.status}")

    ctx.active_rentals_count = (
        db.scalar(select(func.count(Rental.id)).where(Rental.status == STATUS_ACTIVE)) or 0
    )
    return ctx


def build_system_prompt(ctx: ChatContext) -> str:
    lines = [
        "You are the RentalHub support assistant for a property rental platform.",
        "Answer in plain text only and use ONLY the following knowledge when relevant.",
    ]
    if ctx.client_id is not None:
        lines.append(f"Client: {ctx.client_name} (ID {ctx.client_id}), account {ctx.account_status}")
        lines.append(f"Total rentals: {ctx.total_rentals}, active rentals: {ctx.active_rentals}")
        for r in ctx.rentals:
            lines.append(
                f"Rental #{r.rental_id}: property={r.property_name} monthly={r.monthly_rent} "
                f"contract={r.start_date} to {r.end_date} remarks={r.remarks}"
            )
    if ctx.featured:
        lines.append("Featured properties:")
        lines.extend(f"- {item}" for item in ctx.featured)
    lines.append(f"Active rentals count: {ctx.active_rentals_count}")
    lines.append("If unsure or out-of-scope, ask for clarification.")
    return "\n".join(lines)


def analyze_intent(message: str) -> str:
    for intent, pattern in INTENTS:
        if pattern.search(message):
            return intent
    return "general_inquiry"


def rule_based_reply(message: str, ctx: ChatContext) -> str:
    intent = analyze_intent(message)

    if intent == "rental_inquiry":
        if not ctx.rentals:
            return (
                "You don't have any active rentals at the moment. "
                "Would you like to browse our available properties?"
            )
        parts = [f"You currently have {ctx.active_rentals} active rental(s)."]
        for r in ctx.rentals:
            parts.append(f"Your rental at {r.property_name} has a monthly rent of {r.monthly_rent}.")
            if r.remaining_days:
                parts.append(f"You have {r.remaining_days} days remaining on your contract.")
            parts.append(f"Status: {r.remarks}.")
        return " ".join(parts)

    if intent == "payment_inquiry":
        if not ctx.rentals:
            return "You don't have any active rentals requiring payment at this time."
        parts = ["For payment information, please check the 'My Rentals' section."]
        for r in ctx.rentals:
            if "due" in r.remarks.lower():
                parts.append(f"Note: your rental at {r.property_name} is {r.remarks}.")
        return " ".join(parts)

    if intent == "account_inquiry":
        if ctx.client_id is None:
            return "Please sign in so I can look up your account details."
        return (
            f"Your account status is {ctx.account_status} and your e-mail is {ctx.client_email}. "
            "You can update your profile from the settings page."
        )

    if intent == "support_inquiry":
        contact = [f"E-mail: {ctx.contact_email}"] if ctx.contact_email else []
        if ctx.contact_phone:
            contact.append(f"Phone: {ctx.contact_phone}")
        details = "; ".join(contact) or "the contact page"
        return f"You can reach our support team via {details}."

    if intent == "greeting":
        reply = f"Hello {ctx.client_name}! How can I assist you today?"
        if ctx.rentals:
            reply += f" I can help with your {ctx.active_rentals} active rental(s)."
        return reply

    if intent == "thanks":
        return f"You're welcome, {ctx.client_name}! Is there anything else I can help you with?"

    if intent == "browse_properties":
        return (
            "You can browse our available properties from the Properties page. "
            "Would you like me to help you find something specific?"
        )

    return (
        "Could you please provide more details? I can help with your rentals and contracts, "
        "payment information, account settings and browsing available properties."
    )
