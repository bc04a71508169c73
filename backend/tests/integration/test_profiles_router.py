import pytest


@pytest.mark.asyncio
async def test_search_profiles(async_client, auth_headers, profiles):
  response = await async_client.get("/profiles/search", params={"q": "קרול"}, headers=auth_headers("alice"))

  assert response.status_code == 200
  assert response.json() == [{"id": "carol", "full_name": "קרול מזרחי", "avatar_url": None}]


@pytest.mark.asyncio
async def test_search_profiles_excludes_self(async_client, auth_headers, profiles):
  response = await async_client.get("/profiles/search", headers=auth_headers("alice"))

  assert {p["id"] for p in response.json()} == {"bob", "carol"}


@pytest.mark.asyncio
async def test_search_profiles_limit_validation(async_client, auth_headers, profiles):
  response = await async_client.get("/profiles/search", params={"limit": 0}, headers=auth_headers("alice"))

  assert response.status_code == 422
