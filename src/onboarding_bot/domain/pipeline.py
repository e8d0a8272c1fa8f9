"""Pipeline states, funnel milestones and the single transition table."""

from enum import StrEnum


class PipelineState(StrEnum):
    """Durable conversational stage of a user."""

    WAITING_PHOTOS = "WAITING_PHOTOS"
    READY_TO_START_SURVEY = "READY_TO_START_SURVEY"
    SURVEY_IN_PROGRESS = "SURVEY_IN_PROGRESS"
    WAITING_VOICE_SURVEY = "WAITING_VOICE_SURVEY"
    ANALYSIS_COMPLETED = "ANALYSIS_COMPLETED"
    MINI_APP_OPENED = "MINI_APP_OPENED"
    FINAL_MESSAGE_SENT = "FINAL_MESSAGE_SENT"
    ONBOARDING_COMPLETE = "ONBOARDING_COMPLETE"


class PipelineTrigger(StrEnum):
    """Events that move a user between pipeline states."""

    INTAKE_RESET = "intake_reset"
    PHOTOS_COMPLETED = "photos_completed"
    ANALYSIS_DELIVERED = "analysis_delivered"
    SURVEY_STARTED = "survey_started"
    QUESTION_ANSWERED = "question_answered"
    SURVEY_REWOUND = "survey_rewound"
    SURVEY_FINISHED = "survey_finished"
    FEELINGS_CAPTURED = "feelings_captured"
    MINI_APP_CLOSED = "mini_app_closed"
    FINAL_ACKNOWLEDGED = "final_acknowledged"


class FunnelMilestone(StrEnum):
    """Analytics milestones, declared in the order they are reached."""

    BOT_JOINED = "BOT_JOINED"
    FIRST_PHOTO_ANALYSIS = "FIRST_PHOTO_ANALYSIS"
    PSY_TEST_PASSED = "PSY_TEST_PASSED"
    FEELINGS_SHARED = "FEELINGS_SHARED"
    HYPOTHESIS_RECEIVED = "HYPOTHESIS_RECEIVED"
    VIDEO_SHARED = "VIDEO_SHARED"
    PAYMENT_MADE = "PAYMENT_MADE"
    FUNNEL_COMPLETED = "FUNNEL_COMPLETED"

    @property
    def rank(self) -> int:
        """Return the position of the milestone in the funnel."""
        return list(FunnelMilestone).index(self)


class InvalidTransitionError(Exception):
    """Raised when a trigger is not legal from the current state."""

    def __init__(self, state: PipelineState | None, trigger: PipelineTrigger) -> None:
        super().__init__(f"Cannot apply {trigger} from state {state}")
        self.state = state
        self.trigger = trigger


_ANY_STATE: frozenset[PipelineState | None] = frozenset([*PipelineState, None])

TRANSITIONS: dict[
    PipelineTrigger, tuple[frozenset[PipelineState | None], PipelineState]
] = {
    PipelineTrigger.INTAKE_RESET: (_ANY_STATE, PipelineState.WAITING_PHOTOS),
    PipelineTrigger.PHOTOS_COMPLETED: (
        frozenset({PipelineState.WAITING_PHOTOS}),
        PipelineState.READY_TO_START_SURVEY,
    ),
    PipelineTrigger.ANALYSIS_DELIVERED: (
        frozenset({PipelineState.WAITING_PHOTOS, PipelineState.ANALYSIS_COMPLETED}),
        PipelineState.ANALYSIS_COMPLETED,
    ),
    PipelineTrigger.SURVEY_STARTED: (
        frozenset(
            {PipelineState.READY_TO_START_SURVEY, PipelineState.ANALYSIS_COMPLETED}
        ),
        PipelineState.SURVEY_IN_PROGRESS,
    ),
    PipelineTrigger.QUESTION_ANSWERED: (
        frozenset({PipelineState.SURVEY_IN_PROGRESS}),
        PipelineState.SURVEY_IN_PROGRESS,
    ),
    PipelineTrigger.SURVEY_REWOUND: (
        frozenset(
            {PipelineState.SURVEY_IN_PROGRESS, PipelineState.WAITING_VOICE_SURVEY}
        ),
        PipelineState.SURVEY_IN_PROGRESS,
    ),
    PipelineTrigger.SURVEY_FINISHED: (
        frozenset({PipelineState.SURVEY_IN_PROGRESS}),
        PipelineState.WAITING_VOICE_SURVEY,
    ),
    PipelineTrigger.FEELINGS_CAPTURED: (
        frozenset({PipelineState.WAITING_VOICE_SURVEY}),
        PipelineState.MINI_APP_OPENED,
    ),
    PipelineTrigger.MINI_APP_CLOSED: (
        frozenset({PipelineState.MINI_APP_OPENED, PipelineState.FINAL_MESSAGE_SENT}),
        PipelineState.FINAL_MESSAGE_SENT,
    ),
    PipelineTrigger.FINAL_ACKNOWLEDGED: (
        frozenset({PipelineState.FINAL_MESSAGE_SENT}),
        PipelineState.ONBOARDING_COMPLETE,
    ),
}


def can_transition(state: PipelineState | None, trigger: PipelineTrigger) -> bool:
    """Return true when the trigger is legal from the given state."""
    sources, _ = TRANSITIONS[trigger]
    return state in sources


def next_state(
    state: PipelineState | None, trigger: PipelineTrigger
) -> PipelineState:
    """Return the state reached by applying the trigger."""
    sources, target = TRANSITIONS[trigger]
    if state not in sources:
        raise InvalidTransitionError(state, trigger)
    return target


def parse_pipeline_state(raw: str | None) -> PipelineState | None:
    """Parse a stored state value, treating unknown values as unset."""
    if raw is None:
        return None
    try:
        return PipelineState(raw)
    except ValueError:
        return None
