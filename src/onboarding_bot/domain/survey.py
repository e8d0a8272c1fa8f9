"""Survey questions asked after photo intake."""

from dataclasses import dataclass


@dataclass(frozen=True)
class SurveyQuestion:
    """A single survey question with optional fixed answers."""

    number: int
    title: str
    text: str
    options: tuple[str, ...] = ()

    def option_text(self, answer_index: int) -> str | None:
        """Return the text for a 1-based option index."""
        if 1 <= answer_index <= len(self.options):
            return self.options[answer_index - 1]
        return None


SURVEY_QUESTIONS: dict[int, SurveyQuestion] = {
    1: SurveyQuestion(
        number=1,
        title="Energy",
        text="How would you describe your energy over the last few weeks?",
        options=(
            "Full of energy",
            "Up and down",
            "Mostly tired",
            "Completely drained",
        ),
    ),
    2: SurveyQuestion(
        number=2,
        title="Mood",
        text="Which feeling visits you most often lately?",
        options=(
            "Calm",
            "Anxiety",
            "Irritation",
            "Sadness",
            "Indifference",
        ),
    ),
    3: SurveyQuestion(
        number=3,
        title="Situation",
        text=(
            "What situation has been on your mind most often recently? "
            "Reply in your own words."
        ),
    ),
    4: SurveyQuestion(
        number=4,
        title="Support",
        text="Where do you usually look for support when things get hard?",
        options=(
            "Family",
            "Friends",
            "Work or hobbies",
            "I keep it to myself",
            "I don't look for support",
        ),
    ),
}

SURVEY_LENGTH = len(SURVEY_QUESTIONS)
CUSTOM_ANSWER_MIN_LENGTH = 3
CUSTOM_ANSWER_MAX_LENGTH = 500
