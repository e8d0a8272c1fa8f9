"""Tests for Supabase adapter implementations."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from onboarding_bot.adapters.supabase_analysis_repository import (
    SupabaseAnalysisRepository,
)
from onboarding_bot.adapters.supabase_user_info_repository import (
    SupabaseUserInfoRepository,
)
from onboarding_bot.adapters.supabase_user_repository import SupabaseUserRepository
from onboarding_bot.domain.analysis import AnalysisType
from onboarding_bot.domain.models import Language, SurveyAnswer
from onboarding_bot.domain.pipeline import FunnelMilestone, PipelineState


@dataclass
class FakeResponse:
    data: list[dict[str, object]] | None


@dataclass
class FakeTable:
    name: str
    response_queue: dict[str, list[list[dict[str, object]]]] = field(
        default_factory=lambda: {"select": [], "insert": [], "update": []}
    )
    last_payload: object | None = None
    last_filters: list[tuple[str, object]] = field(default_factory=list)
    last_order: tuple[str, bool] | None = None

    def queue(self, action: str, data: list[dict[str, object]]) -> None:
        self.response_queue[action].append(data)

    def select(self, *_args) -> "FakeTable":
        self._action = "select"
        return self

    def insert(self, payload) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._action = "insert"
        self.last_payload = payload
        return self

    def update(self, payload) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._action = "update"
        self.last_payload = payload
        return self

    def eq(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.last_filters.append((column, value))
        return self

    def limit(self, _count: int) -> "FakeTable":
        return self

    def order(self, column: str, desc: bool = False) -> "FakeTable":
        self.last_order = (column, desc)
        return self

    def execute(self) -> FakeResponse:
        action = getattr(self, "_action", "select")
        queue = self.response_queue.get(action, [])
        data = queue.pop(0) if queue else []
        return FakeResponse(data=data)


@dataclass
class FakeSupabaseClient:
    tables: dict[str, FakeTable] = field(default_factory=dict)

    def table(self, name: str) -> FakeTable:
        if name not in self.tables:
            self.tables[name] = FakeTable(name=name)
        return self.tables[name]


def test_supabase_user_repository_roundtrip() -> None:
    client = FakeSupabaseClient()
    users_table = client.table("users")
    user_id = str(uuid4())
    users_table.queue(
        "insert",
        [
            {
                "id": user_id,
                "telegram_user_id": 123,
                "language": "ru",
                "referral_code": "abc",
            }
        ],
    )
    users_table.queue(
        "select",
        [
            {
                "id": user_id,
                "telegram_user_id": 123,
                "pipeline_state": "SURVEY_IN_PROGRESS",
                "language": "ru",
                "funnel_state": "PSY_TEST_PASSED",
                "subscription_expires_at": "2026-03-01T10:00:00+00:00",
            }
        ],
    )

    repository = SupabaseUserRepository(client)
    created = repository.create_user(123, Language.RU, "abc")
    fetched = repository.get_by_telegram_id(123)

    assert str(created.id) == user_id
    assert created.pipeline_state is None
    assert users_table.last_payload == {
        "telegram_user_id": 123,
        "language": "ru",
        "referral_code": "abc",
    }
    assert fetched is not None
    assert fetched.pipeline_state is PipelineState.SURVEY_IN_PROGRESS
    assert fetched.language is Language.RU
    assert fetched.funnel_state is FunnelMilestone.PSY_TEST_PASSED
    assert fetched.subscription_expires_at == datetime(2026, 3, 1, 10, tzinfo=UTC)


def test_supabase_user_repository_tolerates_unknown_values() -> None:
    client = FakeSupabaseClient()
    user_id = str(uuid4())
    client.table("users").queue(
        "select",
        [
            {
                "id": user_id,
                "telegram_user_id": 5,
                "pipeline_state": "RETIRED_STATE",
                "funnel_state": "SOMETHING_ELSE",
            }
        ],
    )

    fetched = SupabaseUserRepository(client).get_user(uuid4())

    assert fetched is not None
    assert fetched.pipeline_state is None
    assert fetched.funnel_state is None
    assert fetched.language is Language.EN


def test_supabase_user_repository_update_serializes_enums() -> None:
    client = FakeSupabaseClient()
    user_id = uuid4()

    SupabaseUserRepository(client).update_user(
        user_id,
        {
            "pipeline_state": PipelineState.MINI_APP_OPENED,
            "funnel_state": FunnelMilestone.FEELINGS_SHARED,
        },
    )

    table = client.table("users")
    assert table.last_payload == {
        "pipeline_state": "MINI_APP_OPENED",
        "funnel_state": "FEELINGS_SHARED",
    }
    assert table.last_filters == [("id", str(user_id))]


def test_supabase_user_info_repository_parses_answers() -> None:
    client = FakeSupabaseClient()
    table = client.table("user_infos")
    info_id = str(uuid4())
    user_id = uuid4()
    table.queue(
        "select",
        [
            {
                "id": info_id,
                "user_id": str(user_id),
                "survey_answers": {
                    "question1": {
                        "answerIndex": 2,
                        "isCustom": False,
                        "answerText": "Up and down",
                        "timestamp": "2026-01-01T12:00:00+00:00",
                    },
                    "notes": "ignored",
                },
                "survey_progress": 1,
                "photo_refs": ["face", "palm"],
                "luscher_test_error": True,
            }
        ],
    )

    info = SupabaseUserInfoRepository(client).get_latest(user_id)

    assert info is not None
    assert str(info.id) == info_id
    assert list(info.survey_answers) == [1]
    assert info.survey_answers[1].answer_text == "Up and down"
    assert info.survey_answers[1].answer_index == 2
    assert info.photo_refs == ("face", "palm")
    assert info.luscher_test_error
    assert info.analysis_id is None
    assert table.last_order == ("created_at", True)


def test_supabase_user_info_repository_update_serializes_answers() -> None:
    client = FakeSupabaseClient()
    info_id = uuid4()
    analysis_id = uuid4()
    answered_at = datetime(2026, 1, 1, 12, tzinfo=UTC)

    SupabaseUserInfoRepository(client).update(
        info_id,
        {
            "survey_answers": {
                3: SurveyAnswer(
                    answer_index=0,
                    is_custom=True,
                    answer_text="Work deadlines",
                    timestamp=answered_at,
                )
            },
            "photo_refs": ("face",),
            "analysis_id": analysis_id,
        },
    )

    table = client.table("user_infos")
    assert table.last_payload == {
        "survey_answers": {
            "question3": {
                "answerIndex": 0,
                "isCustom": True,
                "answerText": "Work deadlines",
                "timestamp": "2026-01-01T12:00:00+00:00",
            }
        },
        "photo_refs": ["face"],
        "analysis_id": str(analysis_id),
    }
    assert table.last_filters == [("id", str(info_id))]


def test_supabase_analysis_repository_create_and_complete() -> None:
    client = FakeSupabaseClient()
    table = client.table("analyses")
    analysis_id = uuid4()
    user_id = uuid4()
    table.queue(
        "insert",
        [{"id": str(analysis_id), "user_id": str(user_id), "status": "PENDING"}],
    )

    repository = SupabaseAnalysisRepository(client)
    record = repository.create(user_id, AnalysisType.DEFAULT, "face", cost=1)

    assert record.id == analysis_id
    assert record.status == "PENDING"
    assert table.last_payload == {
        "user_id": str(user_id),
        "type": "DEFAULT",
        "input_photo_ref": "face",
        "cost": 1,
        "status": "PENDING",
    }

    repository.complete(analysis_id, result_text="Full", summary_text="Short")

    assert table.last_payload == {
        "analysis_result_text": "Full",
        "summary_text": "Short",
        "status": "COMPLETED",
    }
    assert table.last_filters == [("id", str(analysis_id))]
