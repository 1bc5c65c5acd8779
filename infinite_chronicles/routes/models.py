"""Pydantic request models for API endpoints."""

from pydantic import BaseModel

from infinite_chronicles.models import CharacterProfile, StoryChoice


class StartBody(BaseModel):
    profile: CharacterProfile
    api_key: str | None = None


class ChoiceBody(BaseModel):
    text: str
    is_cheat: bool = False


class ChooseBody(BaseModel):
    choice: StoryChoice
    is_cheat: bool = False
