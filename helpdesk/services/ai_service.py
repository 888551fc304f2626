"""
AI Service for Claude API Integration
Ticket summaries, suggested replies and auto-categorization for agents
"""
import json
import logging
import time
from anthropic import Anthropic
from typing import Dict, List, Optional, Any
from flask import current_app
from helpdesk.models.ai_settings import AISettings
from helpdesk.models.tag import Tag
from helpdesk.models.ticket import Ticket
from helpdesk.services.ai_usage_service import track_ai_usage
from helpdesk.utils.encryption import get_encryption_service

logger = logging.getLogger(__name__)

SENTIMENTS = ['positive', 'neutral', 'negative', 'frustrated']
TONES = ['professional', 'friendly', 'formal']


class AIDisabledError(Exception):
    """Raised when AI assist is not available for a tenant"""


def extract_json(response_text: str) -> Dict[str, Any]:
    """Parse a JSON object from a model response, tolerating markdown code blocks"""
    response_text = response_text.strip()

    if "```json" in response_text:
        json_start = response_text.find("```json") + 7
        json_end = response_text.find("```", json_start)
        response_text = response_text[json_start:json_end].strip()
    elif "```" in response_text:
        json_start = response_text.find("```") + 3
        json_end = response_text.find("```", json_start)
        response_text = response_text[json_start:json_end].strip()

    return json.loads(response_text)


def _conversation_text(ticket: Ticket) -> str:
    lines = []
    for message in ticket.messages:
        if message.approval_status in ('pending', 'rejected'):
            continue
        label = 'internal note' if message.is_internal else message.author_type
        lines.append(f"{label} ({message.author_display_name}): {message.body}")
    return "\n\n".join(lines) if lines else "(no messages yet)"


class AIService:
    """Service for interacting with Claude AI on behalf of one tenant"""

    # Use Claude Haiku 4.5 for fast, efficient responses
    DEFAULT_MODEL = "claude-haiku-4-5-20251001"

    def __init__(self, tenant_id: int, api_key: Optional[str] = None, model: Optional[str] = None, client=None):
        if client is None:
            if not api_key:
                raise AIDisabledError("No Anthropic API key configured")
            client = Anthropic(api_key=api_key)

        self.client = client
        self.tenant_id = tenant_id
        self.model = model or self.DEFAULT_MODEL

    def _complete(self, feature: str, system_prompt: str, prompt: str, max_tokens: int,
                  temperature: float = 0.3, ticket_id: Optional[int] = None,
                  user_id: Optional[int] = None) -> str:
        """Send one message and record usage. Returns the response text."""
        started = time.time()
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": prompt}]
            )
        except Exception as e:
            logger.error(f"Claude API error during {feature} for tenant {self.tenant_id}: {e}")
            raise

        usage = getattr(response, 'usage', None)
        track_ai_usage(
            self.tenant_id,
            self.model,
            feature,
            getattr(usage, 'input_tokens', 0) or 0,
            getattr(usage, 'output_tokens', 0) or 0,
            ticket_id=ticket_id,
            user_id=user_id,
            response_time_ms=int((time.time() - started) * 1000)
        )

        if response.content and len(response.content) > 0:
            return response.content[0].text.strip()
        return ''

    def summarize_ticket(self, ticket: Ticket, user_id: Optional[int] = None) -> str:
        """
        Summarize a ticket and its conversation in 2-3 sentences

        Args:
            ticket: The ticket to summarize
            user_id: Agent requesting the summary

        Returns:
            Summary text
        """
        system_prompt = ("You are a helpful assistant that summarizes support tickets. Provide a brief, "
                         "clear summary of the ticket and conversation in 2-3 sentences. Focus on the "
                         "main issue and current status.")

        prompt = f"""Subject: {ticket.subject}

Status: {ticket.status}
Priority: {ticket.priority}

Description: {ticket.description}

Conversation:
{_conversation_text(ticket)}

Please summarize this ticket."""

        return self._complete('summary', system_prompt, prompt, max_tokens=256,
                              ticket_id=ticket.id, user_id=user_id)

    def suggest_reply(self, ticket: Ticket, tone: str = 'professional', user_id: Optional[int] = None) -> str:
        """
        Draft a reply to the customer

        Args:
            ticket: The ticket being answered
            tone: professional, friendly or formal

        Returns:
            Reply body (no greeting or signature)
        """
        if tone not in TONES:
            tone = 'professional'

        system_prompt = (f"You are a helpful support agent. Write a {tone} reply to help resolve the "
                         "customer's issue. Be concise and helpful. Do not include a greeting or "
                         "signature - just the body of the reply.")

        prompt = f"""Subject: {ticket.subject}

Description: {ticket.description}

Conversation:
{_conversation_text(ticket)}

Write a helpful reply to the customer."""

        return self._complete('suggested_reply', system_prompt, prompt, max_tokens=512,
                              temperature=0.5, ticket_id=ticket.id, user_id=user_id)

    def categorize_ticket(self, ticket: Ticket, user_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Suggest priority, tags, category and sentiment for a ticket

        Suggested tags are limited to tags that already exist for the tenant.

        Returns:
            Dictionary with 'priority', 'suggested_tags', 'category', 'sentiment', 'reasoning'
        """
        existing_tags: List[str] = [tag.name for tag in Tag.query.filter_by(tenant_id=ticket.tenant_id).order_by(Tag.name).all()]

        system_prompt = f"""You are a support ticket triage assistant.

Respond ONLY with valid JSON in this exact format:
{{
  "priority": "low|medium|high|urgent",
  "suggested_tags": ["tag names chosen from the available tags"],
  "category": "Short category such as Billing, Technical Support, Feature Request",
  "sentiment": "{'|'.join(SENTIMENTS)}",
  "reasoning": "One sentence explaining the priority"
}}

Available tags: {', '.join(existing_tags) if existing_tags else '(none)'}

Priority guidelines:
- low: Questions, cosmetic issues
- medium: Functionality works but has issues, has workarounds
- high: Major functionality broken, significantly impacts the customer
- urgent: Outage, data loss, security issue"""

        prompt = f"""Subject: {ticket.subject}

Description: {ticket.description}

Conversation:
{_conversation_text(ticket)}

Categorize this ticket in the requested JSON format."""

        response_text = self._complete('categorize', system_prompt, prompt, max_tokens=400,
                                       temperature=0.2, ticket_id=ticket.id, user_id=user_id)

        try:
            result = extract_json(response_text)
        except json.JSONDecodeError as e:
            logger.error(f"Error parsing categorization response as JSON: {e}")
            raise ValueError("AI returned an unreadable categorization")

        # Validate priority value
        if result.get('priority') not in Ticket.PRIORITIES:
            result['priority'] = ticket.priority

        lookup = {name.lower(): name for name in existing_tags}
        result['suggested_tags'] = [
            lookup[str(name).lower()] for name in (result.get('suggested_tags') or [])
            if str(name).lower() in lookup
        ]

        if result.get('sentiment') not in SENTIMENTS:
            result['sentiment'] = 'neutral'

        result.setdefault('category', None)
        result.setdefault('reasoning', '')
        return result


def get_ai_service_for_tenant(tenant, client=None) -> AIService:
    """
    Build an AIService for a tenant from its AISettings

    Uses the tenant's own Anthropic key when one is stored, else the app-wide key.

    Raises:
        AIDisabledError: If AI assist is disabled or no key is available
    """
    settings = AISettings.query.filter_by(tenant_id=tenant.id).first()
    if not settings or not settings.is_enabled:
        raise AIDisabledError("AI assist is not enabled for this workspace")

    model = settings.model or current_app.config.get('AI_DEFAULT_MODEL')

    if client is not None:
        return AIService(tenant.id, model=model, client=client)

    api_key = None
    if settings.anthropic_api_key_encrypted:
        api_key = get_encryption_service().decrypt(settings.anthropic_api_key_encrypted)
    api_key = api_key or current_app.config.get('ANTHROPIC_API_KEY')

    return AIService(tenant.id, api_key=api_key, model=model)
