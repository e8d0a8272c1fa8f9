"""ASGI entrypoint for the onboarding bot API."""

from onboarding_bot.api.app import create_app
from onboarding_bot.containers import build_container

app = create_app(build_container())
