#!/usr/bin/env python3
"""浏览器会话模块 - 封装 Playwright 操作

职责：
1. 启动带 stealth 配置的浏览器上下文
2. 注入 session cookie，访问登录页让 WAF cookies 落到浏览器中
3. 在页面内发起 fetch 请求（复用浏览器的 cookies 和 WAF 验证结果）

一个 BrowserSession 只属于一个账号的一次运行，不可跨账号共享。
"""

import random
import shutil
import tempfile
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable
from urllib.parse import urlparse

from playwright.async_api import BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError

from tokenkeeper.constants import (
	BROWSER_ARGS,
	CHROME_USER_AGENT,
	PAGE_GOTO_TIMEOUT_MS,
	PAGE_LOAD_WAIT_MS,
	WARMUP_DELAY_MAX_MS,
	WARMUP_DELAY_MIN_MS,
)
from tokenkeeper.models import AccountIdentity, ApiResponse


# Stealth 脚本：隐藏自动化特征
STEALTH_SCRIPT = """
// 隐藏 webdriver 标识
Object.defineProperty(navigator, 'webdriver', {
	get: () => undefined,
	configurable: true
});

// 模拟 Chrome 运行时
window.navigator.chrome = {
	runtime: {},
	loadTimes: function() {},
	csi: function() {},
	app: {}
};

// 模拟语言
Object.defineProperty(navigator, 'languages', {
	get: () => ['zh-CN', 'zh', 'en-US', 'en'],
	configurable: true
});
"""

# 页面内 fetch：网络错误和非 JSON 响应都转换为 {error}，不抛到 Python 侧
FETCH_SCRIPT = """
async ({ url, method, headers, body }) => {
	try {
		const init = { method, headers, credentials: 'include' };
		if (body !== null && body !== undefined) {
			init.body = JSON.stringify(body);
		}
		const response = await fetch(url, init);
		const text = await response.text();
		try {
			return { status: response.status, data: JSON.parse(text) };
		} catch (e) {
			return { status: response.status, error: '响应不是 JSON: ' + text.slice(0, 80) };
		}
	} catch (e) {
		return { error: e.message };
	}
}
"""


class BrowserSession:
	"""已认证的浏览器会话

	所有请求都在页面内发出，携带浏览器 cookies 和账号标识请求头。
	"""

	def __init__(self, page: Page, base_url: str, identity: AccountIdentity, api_user_key: str = 'new-api-user'):
		self.page = page
		self.base_url = base_url.rstrip('/')
		self.identity = identity
		self.api_user_key = api_user_key

	def build_headers(self, with_body: bool) -> dict[str, str]:
		headers = {
			'Accept': 'application/json, text/plain, */*',
			'Accept-Language': 'zh-CN,zh;q=0.9,en;q=0.8',
			'X-Requested-With': 'XMLHttpRequest',
			self.api_user_key: str(self.identity.api_user),
		}
		if with_body:
			headers['Content-Type'] = 'application/json'
		return headers

	async def evaluate_in_page(self, fn: str, args: Any = None) -> Any:
		return await self.page.evaluate(fn, args)

	async def fetch_json(self, method: str, path: str, body: Any = None) -> ApiResponse:
		"""在页面内发起请求，任何失败都转换为 ApiResponse(error=...)"""
		args = {
			'url': f'{self.base_url}{path}',
			'method': method,
			'headers': self.build_headers(body is not None),
			'body': body,
		}
		try:
			result = await self.evaluate_in_page(FETCH_SCRIPT, args)
		except PlaywrightError as e:
			return ApiResponse(error=str(e)[:100])
		return ApiResponse.from_page_result(result)


async def _create_stealth_context(playwright, headless: bool = True) -> tuple[BrowserContext, str]:
	"""创建带有 stealth 配置的浏览器上下文

	Returns:
	    (browser_context, temp_dir_path)
	"""
	temp_dir = tempfile.mkdtemp()

	context = await playwright.chromium.launch_persistent_context(
		user_data_dir=temp_dir,
		headless=headless,
		user_agent=CHROME_USER_AGENT,
		viewport={'width': 1920, 'height': 1080},
		args=BROWSER_ARGS,
		ignore_https_errors=True,
	)

	await context.add_init_script(STEALTH_SCRIPT)

	return context, temp_dir


async def _set_session_cookie(context: BrowserContext, domain: str, session_value: str) -> None:
	"""设置用户 session cookie"""
	cookie_domain = urlparse(domain).hostname

	await context.add_cookies([{
		'name': 'session',
		'value': session_value,
		'domain': cookie_domain,
		'path': '/',
		'httpOnly': True,
		'secure': True,
		'sameSite': 'Lax'
	}])


async def _wait_for_page_load(page: Page) -> None:
	"""等待页面加载完成"""
	try:
		await page.wait_for_function('document.readyState === "complete"', timeout=PAGE_LOAD_WAIT_MS)
	except PlaywrightError:
		await page.wait_for_timeout(PAGE_LOAD_WAIT_MS)


@asynccontextmanager
async def open_browser_session(
	base_url: str,
	identity: AccountIdentity,
	login_path: str = '/login',
	api_user_key: str = 'new-api-user',
	headless: bool = True,
	log_fn: Callable[[str], None] | None = None
) -> AsyncIterator[BrowserSession]:
	"""启动浏览器并返回已注入 session 的会话，退出时保证关闭浏览器"""

	def log(msg: str) -> None:
		if log_fn:
			log_fn(msg)
		else:
			print(msg)

	async with async_playwright() as p:
		context = None
		temp_dir = None
		try:
			log('[浏览器] 启动浏览器...')
			context, temp_dir = await _create_stealth_context(p, headless=headless)
			page = await context.new_page()

			log('[Cookie] 设置 session cookie...')
			await _set_session_cookie(context, base_url, identity.session)

			log('[页面] 访问登录页获取 WAF cookies...')
			await page.goto(f'{base_url}{login_path}', wait_until='networkidle', timeout=PAGE_GOTO_TIMEOUT_MS)
			await _wait_for_page_load(page)
			await page.wait_for_timeout(random.randint(WARMUP_DELAY_MIN_MS, WARMUP_DELAY_MAX_MS))

			yield BrowserSession(page, base_url, identity, api_user_key)

		finally:
			if context:
				await context.close()
				log('[浏览器] 浏览器已关闭')
			if temp_dir:
				shutil.rmtree(temp_dir, ignore_errors=True)
