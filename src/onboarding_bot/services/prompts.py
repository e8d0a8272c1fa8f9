"""User-facing prompts and keyboards for the onboarding flow."""

from onboarding_bot.domain.models import SurveyAnswer
from onboarding_bot.domain.survey import SURVEY_LENGTH, SURVEY_QUESTIONS
from onboarding_bot.services.messaging import Prompt

GENERIC_ERROR_TEXT = "Something went wrong. Please try again a bit later."
HELP_TEXT = (
    "I'll guide you through a short onboarding: a face photo, optional palm "
    "photos, a 4-question survey and a voice note about how you feel. "
    "Send /start at any time to continue where you left off."
)
PHOTO_REQUEST_TEXT = (
    "Welcome! Let's begin with a few photos.\n\n"
    "First send a clear, well-lit photo of your face. You can add up to two "
    "palm photos afterwards, or send all of them at once as an album."
)
PHOTOS_ALREADY_RECEIVED_TEXT = "Your photos are already received."
FACE_REJECTED_TEXT = (
    "I couldn't see your face clearly on that photo. "
    "Please send another, well-lit photo of your face."
)
GROUP_REJECTED_TEXT = (
    "These photos don't meet the requirements. Please send a face photo and "
    "palm photos again."
)
PHOTO_RETRY_TEXT = (
    "Something went wrong while processing your photo. Please send it again."
)
INTAKE_FAILED_TEXT = "I couldn't save your photos. Please send them again."
SECOND_PALM_REQUEST_TEXT = "Send a photo of your second palm."
CUSTOM_ANSWER_SHORT_TEXT = (
    "That answer is too short. Please write at least 3 characters."
)
CUSTOM_ANSWER_LONG_TEXT = (
    "That answer is too long. Please keep it under 500 characters."
)
VOICE_FAILED_TEXT = (
    "I couldn't recognise that voice message. Please try again or type your answer."
)
COMPLETED_TEXT = "You have already completed onboarding. Send /start to begin again."
PURCHASE_UNAVAILABLE_TEXT = "Purchases are not available yet. Stay tuned!"
ANALYSIS_FAILED_TEXT = "Your analysis could not be completed."
FACE_NOT_DETECTED_TEXT = "I couldn't detect a face on your photos."
AI_REFUSAL_TEXT = "Your photos couldn't be analysed."
FINAL_PLACEHOLDER_TEXT = (
    "Analysis completed. Your detailed results are available in the app."
)


def inline_keyboard(buttons: list[tuple[str, str]]) -> dict:
    """One button per row."""
    return {
        "inline_keyboard": [
            [{"text": label, "callback_data": data}] for label, data in buttons
        ]
    }


def photo_request_prompt() -> Prompt:
    return Prompt(text=PHOTO_REQUEST_TEXT)


def palms_prompt() -> Prompt:
    return Prompt(
        text=(
            "Face photo received. Now send a photo of your palm, "
            "or skip this step."
        ),
        reply_markup=inline_keyboard(
            [("Skip palms", "skip_palms"), ("Back", "face_back")]
        ),
    )


def second_palm_offer_prompt() -> Prompt:
    return Prompt(
        text="Palm photo received. Add your second palm or finish here.",
        reply_markup=inline_keyboard(
            [
                ("Finish", "complete_analysis"),
                ("Add second palm", "send_second_palm"),
            ]
        ),
    )


def ready_to_survey_prompt() -> Prompt:
    return Prompt(
        text=(
            "Thanks, your photos are saved. "
            "Next is a short survey of 4 questions."
        ),
        reply_markup=inline_keyboard([("I'm ready", "ready_to_start_survey")]),
    )


def question_prompt(number: int) -> Prompt:
    """Render a survey question with its answers and a back button."""
    question = SURVEY_QUESTIONS[number]
    buttons = [
        (option, f"survey_q{number}_{index}")
        for index, option in enumerate(question.options, start=1)
    ]
    if number > 1:
        buttons.append(("Back", f"survey_back_to_q{number - 1}"))
    else:
        buttons.append(("Back", "survey_restart"))
    header = f"Question {number} of {SURVEY_LENGTH}\n\n{question.text}"
    if question.options:
        header += "\n\nPick an answer or reply in your own words."
    return Prompt(text=header, reply_markup=inline_keyboard(buttons))


def voice_prompt() -> Prompt:
    return Prompt(
        text=(
            "Last step: tell me how you feel right now. "
            "Send a voice message or type your answer."
        ),
        reply_markup=inline_keyboard(
            [("Back to question 4", f"survey_back_to_q{SURVEY_LENGTH}")]
        ),
    )


def mini_app_prompt(mini_app_url: str) -> Prompt:
    return Prompt(
        text=(
            "Your answers are saved and the analysis has started. "
            "Open the app to see your results."
        ),
        reply_markup={
            "inline_keyboard": [
                [{"text": "Open app", "web_app": {"url": mini_app_url}}]
            ]
        },
    )


def final_message_prompt(summary_text: str | None) -> Prompt:
    """Final summary, or a placeholder when no summary is stored yet."""
    if summary_text:
        text = (
            f"Main conclusion:\n{summary_text}\n\n"
            "Press the button when you're ready."
        )
    else:
        text = FINAL_PLACEHOLDER_TEXT
    return Prompt(text=text, reply_markup=inline_keyboard([("Ready", "final_ready")]))


def final_choices_prompt() -> Prompt:
    return Prompt(
        text="What would you like to do next?",
        reply_markup=inline_keyboard(
            [
                ("Share with friends", "onboarding_share"),
                ("Repost the video", "onboarding_repost"),
                ("Get full access", "onboarding_purchase"),
            ]
        ),
    )


def share_prompt(bot_username: str, referral_code: str) -> Prompt:
    link = f"https://t.me/{bot_username}?start={referral_code}"
    return Prompt(
        text=f"Invite your friends with your personal link:\n{link}",
        reply_markup=inline_keyboard([("Back", "action_back")]),
    )


def repost_prompt(video_url: str) -> Prompt:
    return Prompt(
        text=f"Share this video with your friends:\n{video_url}",
        reply_markup=inline_keyboard([("Back", "action_back")]),
    )


def purchase_prompt() -> Prompt:
    return Prompt(
        text=PURCHASE_UNAVAILABLE_TEXT,
        reply_markup=inline_keyboard([("Back", "action_back")]),
    )


def support_prompt(support_username: str) -> Prompt:
    return Prompt(
        text=(
            "We couldn't finish your analysis. "
            f"Please contact support: @{support_username}"
        ),
        reply_markup=inline_keyboard(
            [("Send new photos", "retry_photo_analysis")]
        ),
    )


def format_feelings(
    survey_answers: dict[int, SurveyAnswer], feelings: str
) -> str:
    """Combine survey answers and feelings into one text for the analysis."""
    lines = ["Survey results:"]
    for number in sorted(survey_answers):
        question = SURVEY_QUESTIONS.get(number)
        title = question.title if question else f"Question {number}"
        lines.append(f"{number}. {title}\n{survey_answers[number].answer_text}")
    lines.append(f"Feelings:\n{feelings}")
    return "\n\n".join(lines)
