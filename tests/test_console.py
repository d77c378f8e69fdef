#!/usr/bin/env python3
"""远程控制台客户端测试"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from fakes import FakeConsoleSession, make_token, make_user

from tokenkeeper.config import ProviderConfig
from tokenkeeper.console import ConsoleClient, build_create_body, is_signin_success
from tokenkeeper.models import ApiResponse


def session_returning(resp: ApiResponse) -> MagicMock:
	"""创建固定返回值的会话"""
	session = MagicMock()
	session.fetch_json = AsyncMock(return_value=resp)
	return session


def make_client(session) -> ConsoleClient:
	return ConsoleClient(session, log_fn=lambda m: None)


class TestBuildCreateBody:
	"""创建令牌请求体"""

	def test_defaults(self):
		body = build_create_body()
		assert body['name'] == 'dw'
		assert body['remain_quota'] == 500000
		assert 'unlimited_quota' not in body

	def test_unlimited_excludes_remain_quota(self):
		body = build_create_body('x', unlimited_quota=True, remain_quota=1000)
		assert body['unlimited_quota'] is True
		assert 'remain_quota' not in body

	def test_bounded_quota(self):
		body = build_create_body('x', remain_quota=1234)
		assert body['remain_quota'] == 1234
		assert body['expired_time'] == -1
		assert body['group'] == 'default'


class TestSignIn:
	"""签到"""

	def test_success_markers(self):
		assert is_signin_success({'ret': 1})
		assert is_signin_success({'code': 0})
		assert is_signin_success({'success': True})
		assert not is_signin_success({'success': False})
		assert not is_signin_success({})

	@pytest.mark.asyncio
	async def test_success(self):
		session = FakeConsoleSession()
		result = await make_client(session).sign_in()

		assert result.ok is True
		method, path, body = session.calls[0]
		assert (method, path, body) == ('POST', '/api/user/sign_in', {})

	@pytest.mark.asyncio
	async def test_application_rejection_uses_remote_message(self):
		session = FakeConsoleSession(sign_in_response={'success': False, 'message': '今日已签到'})
		result = await make_client(session).sign_in()

		assert result.ok is False
		assert result.error == '今日已签到'

	@pytest.mark.asyncio
	async def test_rejection_without_message(self):
		session = session_returning(ApiResponse(status=200, data={'success': False}))
		result = await make_client(session).sign_in()

		assert result.ok is False
		assert result.error == '未知错误'

	@pytest.mark.asyncio
	async def test_http_error(self):
		session = session_returning(ApiResponse(status=403, data={'success': True}))
		result = await make_client(session).sign_in()

		assert result.ok is False
		assert result.error == 'HTTP 403'

	@pytest.mark.asyncio
	async def test_transport_error(self):
		session = session_returning(ApiResponse(error='Failed to fetch'))
		result = await make_client(session).sign_in()

		assert result.ok is False
		assert result.error == 'Failed to fetch'

	@pytest.mark.asyncio
	async def test_non_json_body(self):
		session = session_returning(ApiResponse(status=200, error='响应不是 JSON: <html>'))
		result = await make_client(session).sign_in()

		assert result.ok is False
		assert 'JSON' in result.error


class TestUserSnapshot:
	"""用户信息"""

	@pytest.mark.asyncio
	async def test_parses_snapshot(self):
		session = FakeConsoleSession(user=make_user(aff_quota=1000, status=2))
		snapshot = await make_client(session).fetch_user_snapshot()

		assert snapshot is not None
		assert snapshot.username == 'alice'
		assert snapshot.aff_quota == 1000
		assert snapshot.is_banned is True

	@pytest.mark.asyncio
	async def test_missing_required_field(self):
		user = make_user()
		del user['quota']
		session = FakeConsoleSession(user=user)

		assert await make_client(session).fetch_user_snapshot() is None

	@pytest.mark.asyncio
	async def test_rejected(self):
		session = session_returning(ApiResponse(status=200, data={'success': False, 'message': '未登录'}))
		assert await make_client(session).fetch_user_snapshot() is None


class TestTokens:
	"""令牌增删改查"""

	@pytest.mark.asyncio
	async def test_list_tokens(self):
		session = FakeConsoleSession(tokens=[make_token(1), make_token(2, name='b')])
		tokens = await make_client(session).list_tokens()

		assert [t.id for t in tokens] == [1, 2]
		assert session.calls[0][1] == '/api/token/?p=0&size=100'

	@pytest.mark.asyncio
	async def test_list_tokens_paginated_payload(self):
		resp = ApiResponse(status=200, data={'success': True, 'data': {'items': [make_token(3)], 'total': 1}})
		tokens = await make_client(session_returning(resp)).list_tokens()

		assert [t.id for t in tokens] == [3]

	@pytest.mark.asyncio
	async def test_list_tokens_skips_bad_records(self):
		resp = ApiResponse(status=200, data={'success': True, 'data': [make_token(3), {'name': 'no-id'}]})
		tokens = await make_client(session_returning(resp)).list_tokens()

		assert [t.id for t in tokens] == [3]

	@pytest.mark.asyncio
	async def test_list_tokens_failure_is_empty(self):
		tokens = await make_client(session_returning(ApiResponse(error='boom'))).list_tokens()
		assert tokens == []

	@pytest.mark.asyncio
	async def test_create_token(self):
		session = FakeConsoleSession()
		ok = await make_client(session).create_token(name='sold_x', remain_quota=1000)

		assert ok is True
		assert session.tokens[0]['name'] == 'sold_x'
		assert session.tokens[0]['remain_quota'] == 1000

	@pytest.mark.asyncio
	async def test_create_token_failure(self):
		session = FakeConsoleSession()
		session.failures[('POST', '/api/token/')] = '令牌数量已达上限'

		assert await make_client(session).create_token() is False

	@pytest.mark.asyncio
	async def test_delete_token(self):
		session = FakeConsoleSession(tokens=[make_token(7)])
		assert await make_client(session).delete_token(7) is True
		assert session.calls[0][:2] == ('DELETE', '/api/token/7')
		assert session.tokens == []

	@pytest.mark.asyncio
	async def test_delete_unknown_token(self):
		session = FakeConsoleSession(tokens=[make_token(7)])
		assert await make_client(session).delete_token(8) is False

	@pytest.mark.asyncio
	async def test_update_token_returns_record(self):
		session = FakeConsoleSession(tokens=[make_token(7, remain_quota=10)])
		record = {**session.tokens[0], 'remain_quota': 20}

		updated = await make_client(session).update_token(record)

		assert updated is not None
		assert updated.remain_quota == 20
		assert session.calls[0][2] == record

	@pytest.mark.asyncio
	async def test_update_token_without_data(self):
		resp = ApiResponse(status=200, data={'success': True})
		assert await make_client(session_returning(resp)).update_token({'id': 7}) is None


class TestAffiliateTransfer:
	"""邀请奖励划转"""

	@pytest.mark.asyncio
	async def test_transfer(self):
		session = FakeConsoleSession(user=make_user(aff_quota=5000))
		result = await make_client(session).transfer_affiliate_reward(5000)

		assert result.ok is True
		assert session.calls[0] == ('POST', '/api/user/aff_transfer', {'quota': 5000})

	@pytest.mark.asyncio
	async def test_transfer_failure(self):
		session = FakeConsoleSession(transfer_ok=False)
		result = await make_client(session).transfer_affiliate_reward(5000)

		assert result.ok is False
		assert result.message == '划转失败'


class TestCustomPaths:
	"""Provider 自定义路径"""

	@pytest.mark.asyncio
	async def test_uses_provider_paths(self):
		provider = ProviderConfig(name='custom', domain='https://x.example', sign_in_path='/api/checkin')
		session = session_returning(ApiResponse(status=200, data={'success': True}))

		await ConsoleClient(session, provider, log_fn=lambda m: None).sign_in()

		session.fetch_json.assert_awaited_once_with('POST', '/api/checkin', {})
