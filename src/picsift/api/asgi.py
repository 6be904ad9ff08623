"""ASGI entrypoint for the PicSift triage API."""

from picsift.api.app import create_app
from picsift.config import Settings
from picsift.containers import build_container

settings = Settings()
app = create_app(build_container(settings))
