"""
Sequence Templates Service
Provides starter outreach sequences users can pick and then customize
"""

from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field
from enum import Enum

from services.sequence_serializer import from_flat, DeserializeResult


class TemplateChannel(str, Enum):
    EMAIL = "email"
    LINKEDIN = "linkedin"
    MULTICHANNEL = "multichannel"


@dataclass
class SequenceTemplate:
    id: str
    name: str
    description: str
    channel: TemplateChannel
    steps: List[Dict[str, Any]] = field(default_factory=list)


class SequenceTemplatesService:
    """Service for starter sequence templates"""

    def __init__(self):
        self.templates = self._load_templates()

    def _load_templates(self) -> Dict[str, SequenceTemplate]:
        """Load all available sequence templates"""
        templates = {}
        templates.update(self._get_email_templates())
        templates.update(self._get_linkedin_templates())
        templates.update(self._get_multichannel_templates())
        return templates

    def _get_email_templates(self) -> Dict[str, SequenceTemplate]:
        return {
            "email_follow_up": SequenceTemplate(
                id="email_follow_up",
                name="Email with follow-up",
                description="Intro email, then a follow-up only if the first one went unopened",
                channel=TemplateChannel.EMAIL,
                steps=[
                    {"id": "intro", "stepType": "email", "content": {
                        "subject": "Quick question, {{first_name}}",
                        "message": "Hi {{first_name}}, I noticed {{company}} is growing fast.",
                        "delay": 0, "delayUnit": "days"}},
                    {"id": "opened", "stepType": "email-opened", "parentId": "intro", "parentBranch": "main",
                     "content": {"delay": 2, "delayUnit": "days"}},
                    {"id": "bump", "stepType": "email", "parentId": "opened", "parentBranch": "no", "content": {
                        "subject": "Re: Quick question, {{first_name}}",
                        "message": "Just bumping this to the top of your inbox.",
                        "delay": 1, "delayUnit": "days"}},
                    {"id": "call", "stepType": "manual-task", "parentId": "opened", "parentBranch": "yes", "content": {
                        "taskTitle": "Call {{name}}",
                        "taskDescription": "They opened the intro email; follow up by phone.",
                        "priority": "high", "dueDays": 1, "delay": 0, "delayUnit": "days"}},
                ],
            ),
        }

    def _get_linkedin_templates(self) -> Dict[str, SequenceTemplate]:
        return {
            "linkedin_connect": SequenceTemplate(
                id="linkedin_connect",
                name="LinkedIn connect and message",
                description="Visit the profile, invite, then message once connected",
                channel=TemplateChannel.LINKEDIN,
                steps=[
                    {"id": "visit", "stepType": "linkedin-visit", "content": {"delay": 0, "delayUnit": "days"}},
                    {"id": "invite", "stepType": "linkedin-invitation", "parentId": "visit", "parentBranch": "main",
                     "content": {"message": "Hi {{first_name}}, would love to connect.",
                                 "delay": 1, "delayUnit": "days"}},
                    {"id": "connected", "stepType": "linkedin-connection-check", "parentId": "invite",
                     "parentBranch": "main", "content": {"delay": 3, "delayUnit": "days"}},
                    {"id": "thanks", "stepType": "linkedin-message", "parentId": "connected", "parentBranch": "yes",
                     "content": {"message": "Thanks for connecting, {{first_name}}!",
                                 "delay": 0, "delayUnit": "hours"}},
                ],
            ),
        }

    def _get_multichannel_templates(self) -> Dict[str, SequenceTemplate]:
        return {
            "multichannel_reply_check": SequenceTemplate(
                id="multichannel_reply_check",
                name="Email, then LinkedIn if no reply",
                description="Start by email and move to LinkedIn when there is no reply",
                channel=TemplateChannel.MULTICHANNEL,
                steps=[
                    {"id": "intro", "stepType": "email", "content": {
                        "subject": "{{company}} and outbound",
                        "message": "Hi {{first_name}}, as {{position}} you might find this useful.",
                        "delay": 0, "delayUnit": "days"}},
                    {"id": "replied", "stepType": "email-reply", "parentId": "intro", "parentBranch": "main",
                     "content": {"delay": 3, "delayUnit": "days"}},
                    {"id": "has_linkedin", "stepType": "has-linkedin", "parentId": "replied", "parentBranch": "no",
                     "content": {"delay": 0, "delayUnit": "minutes"}},
                    {"id": "invite", "stepType": "linkedin-invitation", "parentId": "has_linkedin",
                     "parentBranch": "yes", "content": {"message": "", "delay": 0, "delayUnit": "days"}},
                    {"id": "task", "stepType": "manual-task", "parentId": "has_linkedin", "parentBranch": "no",
                     "content": {"taskTitle": "Find another channel for {{name}}", "priority": "low",
                                 "delay": 0, "delayUnit": "days"}},
                ],
            ),
        }

    def list_templates(self, channel: Optional[TemplateChannel] = None) -> List[SequenceTemplate]:
        templates = list(self.templates.values())
        if channel is not None:
            templates = [t for t in templates if t.channel == channel]
        return templates

    def get_template(self, template_id: str) -> Optional[SequenceTemplate]:
        return self.templates.get(template_id)

    def build(self, template_id: str) -> Optional[DeserializeResult]:
        """Load a template into a fresh, laid-out graph."""
        template = self.get_template(template_id)
        if template is None:
            return None
        return from_flat(template.steps, relayout=True)
