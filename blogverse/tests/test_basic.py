import pytest


@pytest.mark.asyncio
async def test_healthz(client):
    res = await client.get('/healthz')
    assert res.status_code == 200
    assert res.json() == {'status': 'ok'}


@pytest.mark.asyncio
async def test_unknown_profile(client):
    res = await client.get('/api/users/1/profile')
    assert res.status_code == 404
    assert res.json()['code'] == 'user_not_found'
