"""
Step Formatters

Per-tool-family presentation of step results. Each formatter is
registered alongside the tool handlers of its family and knows how to:

- format_output: turn a raw result into a StepOutput (display text plus
  structured fields) bound to the step's output key
- summarize: describe one StepResult in a single line for the narrative

DESIGN RULES:
- Presentational only, never influences control flow
- Unknown actions fall back to generic text, never raise
"""

import json
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from schemas.result import StepOutput, StepResult


class StepFormatter:
    """
    Generic formatter; also the fallback for tools with no family.
    """

    server: str = ""

    def action(self, tool: str) -> str:
        """Tool name with the family prefix removed."""
        prefix = f"{self.server}_"
        if self.server and tool.startswith(prefix):
            return tool[len(prefix):]
        return tool

    def format_output(self, tool: str, result: Any) -> StepOutput:
        if isinstance(result, str):
            return StepOutput(formatted=result)
        if isinstance(result, Mapping):
            fields = dict(result)
            for key in ("message", "response"):
                if result.get(key):
                    return StepOutput(formatted=str(result[key]), fields=fields)
            return StepOutput(formatted=_to_json(result), fields=fields)
        if result is None:
            return StepOutput()
        return StepOutput(formatted=_to_json(result))

    def summarize(self, result: StepResult) -> str:
        return f"{result.server}.{result.tool}"


class EmailFormatter(StepFormatter):
    server = "email"

    def format_output(self, tool: str, result: Any) -> StepOutput:
        if self.action(tool) in ("send", "send_email") and isinstance(result, Mapping):
            sent = result.get("success") is not False
            return StepOutput(
                formatted="Email sent successfully" if sent else "Failed to send email",
                fields={"success": sent, "messageId": result.get("messageId")},
            )
        return super().format_output(tool, result)

    def summarize(self, result: StepResult) -> str:
        action = self.action(result.tool)
        params = result.input
        output = _mapping(result.output)
        if action in ("send", "send_email"):
            to = params.get("to") or params.get("recipientEmail") or params.get("recipientName")
            if result.success and output.get("messageId"):
                return f'Sent email to {to} with subject "{params.get("subject", "")}"'
            return f"Attempted to send email to {to}"
        return f"Email operation: {action}"


class ShoppingFormatter(StepFormatter):
    server = "shopping"

    def format_output(self, tool: str, result: Any) -> StepOutput:
        if self.action(tool) == "search_products" and isinstance(result, Mapping):
            products = list(result.get("products") or [])
            lines = [
                f"{i}. {p.get('productName') or p.get('title') or 'Unknown'} - {_yen(p.get('price'))}"
                for i, p in enumerate(products, start=1)
            ]
            return StepOutput(
                formatted="\n".join(lines) if lines else "No products found",
                fields={
                    "products": products,
                    "count": len(products),
                    "referenceId": result.get("referenceId"),
                },
            )
        return super().format_output(tool, result)

    def summarize(self, result: StepResult) -> str:
        action = self.action(result.tool)
        params = result.input
        output = _mapping(result.output)
        if action == "search_products":
            if result.success and "products" in output:
                return f'Found {len(output["products"] or [])} products for "{params.get("query", "")}"'
            return f"Searched for products: {params.get('query', '')}"
        if action in ("create_order", "checkout"):
            if result.success and output.get("orderId"):
                return f"Completed purchase - Order ID: {output['orderId']}"
            return "Attempted to complete purchase"
        if action == "add_to_cart":
            if result.success:
                return f"Added {len(params.get('productIds') or []) or 1} items to cart"
            return "Attempted to add items to cart"
        return f"Shopping operation: {action}"


class AIChatFormatter(StepFormatter):
    server = "ai_chat"

    PREVIEW_CHARS = 50

    def format_output(self, tool: str, result: Any) -> StepOutput:
        if isinstance(result, Mapping):
            response = result.get("response") or ""
            return StepOutput(formatted=str(response), fields={**result, "response": result.get("response")})
        return super().format_output(tool, result)

    def summarize(self, result: StepResult) -> str:
        action = self.action(result.tool)
        if action in ("question", "chat"):
            response = _mapping(result.output).get("response")
            if result.success and response:
                preview = str(response)[: self.PREVIEW_CHARS]
                if len(str(response)) > self.PREVIEW_CHARS:
                    preview += "..."
                return f'AI responded to question: "{preview}"'
            question = str(result.input.get("question") or result.input.get("message") or "")
            return f"Asked AI: {question[:30]}..."
        return f"AI chat operation: {action}"


class PaymentFormatter(StepFormatter):
    server = "payment"

    def summarize(self, result: StepResult) -> str:
        action = self.action(result.tool)
        output = _mapping(result.output)
        if action == "process_payment":
            if result.success and output.get("transactionId"):
                return f"Payment processed - Transaction ID: {output['transactionId']}"
            return "Attempted to process payment"
        if action == "initiate_bank_transfer":
            if result.success and output.get("transferDetails"):
                return "Bank transfer initiated"
            return "Attempted to initiate bank transfer"
        if action in ("register", "register_payment_method"):
            if result.success:
                return f"Registered payment method: {result.input.get('methodType', 'unknown')}"
            return "Attempted to register payment method"
        if action in ("check_status", "check_payment_status"):
            return f"Checked payment status: {output.get('status', 'unknown')}"
        return f"Payment operation: {action}"


class UserProfileFormatter(StepFormatter):
    server = "user_profile"

    def format_output(self, tool: str, result: Any) -> StepOutput:
        action = self.action(tool)
        if not isinstance(result, Mapping) or action not in ("get_contacts", "lookup_contact"):
            return super().format_output(tool, result)

        contacts: List[Dict[str, Any]] = list(result.get("contacts") or [])
        if action == "get_contacts":
            lines = [
                f"• {c.get('name')}{' (' + c['relationship'] + ')' if c.get('relationship') else ''}: {c.get('email')}"
                for c in contacts
            ]
            return StepOutput(
                formatted="\n".join(lines) if lines else "No contacts found",
                fields={"contacts": contacts, "count": len(contacts)},
            )

        if len(contacts) == 1:
            contact = contacts[0]
            return StepOutput(
                formatted=f"{contact.get('name')}: {contact.get('email')}",
                fields={
                    "contact": contact,
                    "email": contact.get("email"),
                    "name": contact.get("name"),
                },
            )
        first: Dict[str, Any] = contacts[0] if contacts else {}
        return StepOutput(
            formatted="\n".join(f"{c.get('name')}: {c.get('email')}" for c in contacts),
            fields={
                "contacts": contacts,
                "count": len(contacts),
                "email": first.get("email"),
                "name": first.get("name"),
            },
        )

    def summarize(self, result: StepResult) -> str:
        action = self.action(result.tool)
        output = _mapping(result.output)
        if action == "lookup_contact":
            name = result.input.get("query") or result.input.get("name")
            contacts = output.get("contacts") or []
            email = output.get("email") or (contacts[0].get("email") if contacts else None)
            if result.success and email:
                return f"Found email address for {name}: {email}"
            return f"Looked up contact: {name}"
        if action == "get_contacts":
            return f"Retrieved {len(output.get('contacts') or [])} contacts"
        if action in ("add_contact", "update_contact", "delete_contact"):
            verb = action.split("_", 1)[0].capitalize()
            return f"{verb} contact: {result.input.get('name', '')}".rstrip()
        return f"User profile operation: {action}"


DEFAULT_FORMATTER = StepFormatter()

FAMILY_FORMATTERS: Dict[str, StepFormatter] = {
    f.server: f
    for f in (
        EmailFormatter(),
        ShoppingFormatter(),
        AIChatFormatter(),
        PaymentFormatter(),
        UserProfileFormatter(),
    )
}


def formatter_for_server(server: Optional[str]) -> StepFormatter:
    return FAMILY_FORMATTERS.get(server or "", DEFAULT_FORMATTER)


def _mapping(value: Any) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def _yen(price: Any) -> str:
    if isinstance(price, (int, float)) and not isinstance(price, bool):
        return f"¥{price:,}"
    return "N/A"


def _to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2, default=str)
