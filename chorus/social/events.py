"""Story-event entry point.

Called once per completed story message from the host chat:

    classify → classifier resolution progress → outreach check

Neither the classifier nor outreach can fail the event; the worst case is
"nothing happened this time".
"""

from __future__ import annotations

import logging

from pydantic import BaseModel

from chorus.session import Session
from chorus.social.classifier import apply_classifier_progress, classify_message
from chorus.social.extractors import Classification
from chorus.social.outreach import OutreachResult, check_outreach

logger = logging.getLogger(__name__)


class StoryEventResult(BaseModel):
    classification: Classification
    outreach: OutreachResult | None = None


async def process_story_event(session: Session, message_text: str) -> StoryEventResult:
    voices = session.state.voices
    classification = await classify_message(session.llm, message_text, voices)
    if apply_classifier_progress(classification, voices):
        session.save()

    outreach = await check_outreach(
        session,
        themes=classification.themes,
        impact=classification.impact,
        summary=classification.summary,
    )
    return StoryEventResult(classification=classification, outreach=outreach)
