"""Voice social simulation: state machine, ledgers, parsers and orchestrators."""

from chorus.social.classifier import apply_classifier_progress, classify_message
from chorus.social.council import (
    activate_council,
    clear_council_history,
    deactivate_council,
    reset_council,
    run_council_turn,
    send_council_message,
)
from chorus.social.directory import (
    VoiceNotFound,
    close_directory,
    open_directory,
    send_directory_message,
)
from chorus.social.events import StoryEventResult, process_story_event
from chorus.social.extractors import (
    Assessment,
    Classification,
    CouncilTurn,
    DirectoryReply,
    parse_assessment,
    parse_classification,
    parse_council_response,
)
from chorus.social.influence import adjust_influence
from chorus.social.outreach import OutreachResult, check_outreach, score_outreach
from chorus.social.relationships import transition
from chorus.social.resolution import advance_resolution

__all__ = [
    "Assessment",
    "Classification",
    "CouncilTurn",
    "DirectoryReply",
    "OutreachResult",
    "StoryEventResult",
    "VoiceNotFound",
    "activate_council",
    "adjust_influence",
    "advance_resolution",
    "apply_classifier_progress",
    "check_outreach",
    "classify_message",
    "clear_council_history",
    "close_directory",
    "deactivate_council",
    "open_directory",
    "parse_assessment",
    "parse_classification",
    "parse_council_response",
    "process_story_event",
    "reset_council",
    "run_council_turn",
    "score_outreach",
    "send_council_message",
    "send_directory_message",
    "transition",
]
