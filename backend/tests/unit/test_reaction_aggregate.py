from app.models.message import MessageReaction
from app.services.reaction_service import ReactionService


def _reaction(user_id, emoji):
  return MessageReaction(message_id="m-1", user_id=user_id, emoji=emoji)


def test_aggregate_counts_and_viewer_flag():
  reactions = [
    _reaction("alice", "👍"),
    _reaction("bob", "❤️"),
    _reaction("bob", "👍"),
    _reaction("carol", "👍"),
  ]

  counts = ReactionService.aggregate(reactions, viewer_id="bob")

  assert [(c.emoji, c.count, c.viewer_has_reacted) for c in counts] == [
    ("👍", 3, True),
    ("❤️", 1, True),
  ]


def test_aggregate_anonymous_viewer():
  counts = ReactionService.aggregate([_reaction("alice", "😂")], viewer_id=None)

  assert len(counts) == 1
  assert counts[0].count == 1
  assert counts[0].viewer_has_reacted is False


def test_aggregate_empty():
  assert ReactionService.aggregate([], viewer_id="alice") == []
