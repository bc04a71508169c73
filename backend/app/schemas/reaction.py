from pydantic import BaseModel


class ReactionToggle(BaseModel):
  emoji: str


class ReactionCount(BaseModel):
  """Сводка по одному эмодзи под сообщением"""

  emoji: str
  count: int
  viewer_has_reacted: bool = False


class ReactionToggleResponse(BaseModel):
  emoji: str
  reacted: bool
