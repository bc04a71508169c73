import pytest


@pytest.fixture
async def message(profiles, make_conversation, make_message):
  conversation_id = await make_conversation("alice", "bob")
  return await make_message(conversation_id, "bob", "יש הנחה?")


@pytest.mark.asyncio
async def test_toggle_reaction(async_client, auth_headers, message):
  url = f"/messages/{message.id}/reactions"

  response = await async_client.post(url, json={"emoji": "👍"}, headers=auth_headers("alice"))
  assert response.status_code == 200
  assert response.json() == {"emoji": "👍", "reacted": True}

  response = await async_client.get(url, headers=auth_headers("alice"))
  assert response.json() == [{"emoji": "👍", "count": 1, "viewer_has_reacted": True}]

  # Аноним видит реакции, но без своей отметки
  response = await async_client.get(url)
  assert response.json() == [{"emoji": "👍", "count": 1, "viewer_has_reacted": False}]

  response = await async_client.post(url, json={"emoji": "👍"}, headers=auth_headers("alice"))
  assert response.json() == {"emoji": "👍", "reacted": False}


@pytest.mark.asyncio
async def test_toggle_reaction_errors(async_client, auth_headers, message):
  response = await async_client.post(
    f"/messages/{message.id}/reactions", json={"emoji": "🍕"}, headers=auth_headers("alice"),
  )
  assert response.status_code == 400
  assert response.json()["detail"] == "INVALID_EMOJI"

  response = await async_client.post(
    "/messages/missing/reactions", json={"emoji": "👍"}, headers=auth_headers("alice"),
  )
  assert response.status_code == 404

  response = await async_client.post(
    f"/messages/{message.id}/reactions", json={"emoji": "👍"}, headers=auth_headers("carol"),
  )
  assert response.status_code == 403


@pytest.mark.asyncio
async def test_toggle_requires_token(async_client, message):
  response = await async_client.post(f"/messages/{message.id}/reactions", json={"emoji": "👍"})
  assert response.status_code == 401


@pytest.mark.asyncio
async def test_recent_messages(async_client, auth_headers, message):
  response = await async_client.get("/messages/recent", headers=auth_headers("alice"))

  assert response.status_code == 200
  [recent] = response.json()
  assert recent["content"] == "יש הנחה?"
  assert recent["sender_name"] == "בוב לוי"
