#!/usr/bin/env python3
"""浏览器会话模块测试"""

import sys
from contextlib import asynccontextmanager
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tokenkeeper.models import AccountIdentity
from tokenkeeper.session import (
	FETCH_SCRIPT,
	STEALTH_SCRIPT,
	BrowserSession,
	_set_session_cookie,
	open_browser_session,
)


def make_session(evaluate_result=None, side_effect=None) -> BrowserSession:
	page = MagicMock()
	page.evaluate = AsyncMock(return_value=evaluate_result, side_effect=side_effect)
	identity = AccountIdentity(session='s3cret', api_user='89643')
	return BrowserSession(page, 'https://anyrouter.top/', identity)


class TestFetchJson:
	"""页面内请求"""

	@pytest.mark.asyncio
	async def test_passes_url_method_and_identity_header(self):
		session = make_session({'status': 200, 'data': {'success': True}})

		resp = await session.fetch_json('POST', '/api/user/sign_in', {})

		assert resp.ok is True
		script, args = session.page.evaluate.await_args.args
		assert script == FETCH_SCRIPT
		assert args['url'] == 'https://anyrouter.top/api/user/sign_in'
		assert args['method'] == 'POST'
		assert args['body'] == {}
		assert args['headers']['new-api-user'] == '89643'
		assert args['headers']['Content-Type'] == 'application/json'

	@pytest.mark.asyncio
	async def test_get_has_no_content_type(self):
		session = make_session({'status': 200, 'data': {'success': True, 'data': []}})

		await session.fetch_json('GET', '/api/token/?p=0&size=100')

		args = session.page.evaluate.await_args.args[1]
		assert 'Content-Type' not in args['headers']
		assert args['body'] is None

	@pytest.mark.asyncio
	async def test_page_error_becomes_failure(self):
		session = make_session({'error': 'Failed to fetch'})

		resp = await session.fetch_json('GET', '/api/user/self')

		assert resp.ok is False
		assert resp.status is None
		assert resp.error == 'Failed to fetch'

	@pytest.mark.asyncio
	async def test_playwright_error_is_caught(self):
		session = make_session(side_effect=PlaywrightError('Target closed'))

		resp = await session.fetch_json('GET', '/api/user/self')

		assert resp.ok is False
		assert 'Target closed' in resp.error

	@pytest.mark.asyncio
	async def test_custom_identity_header(self):
		session = make_session({'status': 200, 'data': {}})
		session.api_user_key = 'veloera-user'

		await session.fetch_json('GET', '/api/user/self')

		headers = session.page.evaluate.await_args.args[1]['headers']
		assert headers['veloera-user'] == '89643'
		assert 'new-api-user' not in headers


class TestSessionCookie:
	"""session cookie 注入"""

	@pytest.mark.asyncio
	async def test_cookie_scoped_to_hostname(self):
		context = MagicMock()
		context.add_cookies = AsyncMock()

		await _set_session_cookie(context, 'https://anyrouter.top', 'abc')

		cookie = context.add_cookies.await_args.args[0][0]
		assert cookie['name'] == 'session'
		assert cookie['value'] == 'abc'
		assert cookie['domain'] == 'anyrouter.top'
		assert cookie['httpOnly'] is True
		assert cookie['secure'] is True


class TestOpenBrowserSession:
	"""浏览器生命周期"""

	@pytest.mark.asyncio
	async def test_context_closed_on_error(self):
		page = MagicMock()
		page.goto = AsyncMock()
		page.wait_for_function = AsyncMock()
		page.wait_for_timeout = AsyncMock()
		context = MagicMock()
		context.new_page = AsyncMock(return_value=page)
		context.add_cookies = AsyncMock()
		context.close = AsyncMock()

		@asynccontextmanager
		async def fake_playwright():
			yield MagicMock()

		identity = AccountIdentity(session='s', api_user='1')
		with patch('tokenkeeper.session.async_playwright', fake_playwright), \
			patch('tokenkeeper.session._create_stealth_context', AsyncMock(return_value=(context, None))):
			with pytest.raises(RuntimeError):
				async with open_browser_session('https://anyrouter.top', identity, log_fn=lambda m: None) as session:
					assert session.identity == identity
					raise RuntimeError('boom')

		context.close.assert_awaited_once()
		page.goto.assert_awaited_once()
		assert page.goto.await_args.args[0] == 'https://anyrouter.top/login'


class TestStealthScript:
	"""Stealth 脚本"""

	def test_hides_webdriver(self):
		assert 'webdriver' in STEALTH_SCRIPT
		assert 'undefined' in STEALTH_SCRIPT

	def test_fetch_script_includes_credentials(self):
		assert "credentials: 'include'" in FETCH_SCRIPT
