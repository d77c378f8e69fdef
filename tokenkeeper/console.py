#!/usr/bin/env python3
"""远程控制台客户端

对 new-api 控制台的七个接口做一层类型化封装：签到、用户信息、令牌增删改查、邀请奖励划转。
客户端不持有状态，所有请求都经由 BrowserSession 在页面内发出。

普通的 HTTP 错误和业务错误不会抛异常，统一转换为失败结果并记录日志。
"""

from typing import Any, Callable, Protocol

from tokenkeeper.config import ProviderConfig
from tokenkeeper.constants import DEFAULT_TOKEN_NAME, DEFAULT_TOKEN_QUOTA, TOKEN_PAGE_SIZE
from tokenkeeper.models import (
	ApiResponse,
	PayloadError,
	RemoteToken,
	SignInResult,
	TransferResult,
	UserSnapshot,
)


class PageSession(Protocol):
	"""ConsoleClient 依赖的会话接口（BrowserSession 实现了它）"""

	async def fetch_json(self, method: str, path: str, body: Any = None) -> ApiResponse:
		...


def build_create_body(
	name: str | None = None,
	unlimited_quota: bool = False,
	remain_quota: int | None = None
) -> dict:
	"""构建创建令牌的请求体

	unlimited_quota 和 remain_quota 只会出现其中一个。
	"""
	body: dict[str, Any] = {
		'name': name or DEFAULT_TOKEN_NAME,
		'expired_time': -1,
		'model_limits_enabled': False,
		'model_limits': '',
		'allow_ips': '',
		'group': 'default',
	}
	if unlimited_quota:
		body['unlimited_quota'] = True
	else:
		body['remain_quota'] = remain_quota or DEFAULT_TOKEN_QUOTA
	return body


def is_signin_success(data: dict) -> bool:
	"""签到接口的成功标识有多种写法"""
	return data.get('ret') == 1 or data.get('code') == 0 or data.get('success') is True


class ConsoleClient:
	"""远程账号客户端"""

	def __init__(
		self,
		session: PageSession,
		provider: ProviderConfig | None = None,
		log_fn: Callable[[str], None] | None = None
	):
		self.session = session
		self.provider = provider or ProviderConfig(name='default', domain='')
		self.log_fn = log_fn

	def log(self, msg: str) -> None:
		if self.log_fn:
			self.log_fn(msg)
		else:
			print(msg)

	async def sign_in(self) -> SignInResult:
		"""执行签到，成功与否以响应体中的成功标识为准"""
		self.log('[网络] 执行签到...')
		resp = await self.session.fetch_json('POST', self.provider.sign_in_path, {})

		if resp.status is None:
			self.log(f'[失败] 签到请求失败: {resp.error}')
			return SignInResult(ok=False, error=resp.error)

		self.log(f'[响应] 签到响应状态码 {resp.status}')
		if resp.status != 200:
			self.log(f'[失败] 签到失败 - HTTP {resp.status}')
			return SignInResult(ok=False, raw=resp.body, error=f'HTTP {resp.status}')

		if resp.error:
			self.log(f'[失败] 签到请求失败: {resp.error}')
			return SignInResult(ok=False, error=resp.error)

		data = resp.body
		if is_signin_success(data):
			msg = data.get('msg') or data.get('message') or ''
			self.log(f'[成功] 签到成功! {msg}'.rstrip())
			return SignInResult(ok=True, raw=data)

		error_msg = data.get('msg') or data.get('message') or '未知错误'
		self.log(f'[失败] 签到失败 - {error_msg}')
		return SignInResult(ok=False, raw=data, error=error_msg)

	async def fetch_user_snapshot(self) -> UserSnapshot | None:
		"""获取用户信息"""
		resp = await self.session.fetch_json('GET', self.provider.user_info_path)
		if not resp.ok:
			self.log(f'[失败] 获取用户信息失败: {resp.message or f"HTTP {resp.status}"}')
			return None

		try:
			return UserSnapshot.from_api(resp.body.get('data'))
		except PayloadError as e:
			self.log(f'[失败] 用户信息格式错误: {e}')
			return None

	async def list_tokens(self) -> list[RemoteToken]:
		"""获取令牌列表，失败时返回空列表"""
		self.log('[令牌] 获取令牌列表...')
		path = f'{self.provider.token_path}?p=0&size={TOKEN_PAGE_SIZE}'
		resp = await self.session.fetch_json('GET', path)
		if not resp.ok:
			self.log(f'[失败] 获取令牌列表失败: {resp.message or f"HTTP {resp.status}"}')
			return []

		items = resp.body.get('data') or []
		# 新版 new-api 返回分页对象 {items: [...], total: N}
		if isinstance(items, dict):
			items = items.get('items') or []

		tokens = []
		for item in items:
			try:
				tokens.append(RemoteToken.from_api(item))
			except PayloadError as e:
				self.log(f'[警告] 跳过无法解析的令牌记录: {e}')

		self.log(f'[信息] 获取到 {len(tokens)} 个令牌')
		return tokens

	async def create_token(
		self,
		name: str | None = None,
		unlimited_quota: bool = False,
		remain_quota: int | None = None
	) -> bool:
		"""创建新令牌"""
		self.log('[令牌] 创建新令牌...')
		body = build_create_body(name, unlimited_quota, remain_quota)
		resp = await self.session.fetch_json('POST', self.provider.token_path, body)

		if resp.ok:
			self.log(f'[成功] 令牌 {body["name"]} 创建成功')
			return True

		self.log(f'[失败] 创建令牌失败: {resp.message or "未知错误"}')
		return False

	async def delete_token(self, token_id: int) -> bool:
		self.log(f'[令牌] 删除令牌 ID: {token_id}...')
		resp = await self.session.fetch_json('DELETE', f'{self.provider.token_path}{token_id}')

		if resp.ok:
			self.log(f'[成功] 令牌 {token_id} 删除成功')
			return True

		self.log(f'[失败] 删除令牌失败: {resp.message or "未知错误"}')
		return False

	async def update_token(self, token_record: dict) -> RemoteToken | None:
		"""更新令牌

		token_record 必须是完整的令牌记录，远程接口不支持部分字段更新。
		"""
		token_id = token_record.get('id')
		self.log(f'[令牌] 更新令牌 ID: {token_id}...')
		resp = await self.session.fetch_json('PUT', self.provider.token_path, token_record)

		if not resp.ok:
			self.log(f'[失败] 更新令牌失败: {resp.message or "未知错误"}')
			return None

		try:
			updated = RemoteToken.from_api(resp.body.get('data'))
		except PayloadError as e:
			self.log(f'[失败] 更新令牌返回格式错误: {e}')
			return None

		self.log(f'[成功] 令牌 {token_id} 更新成功')
		return updated

	async def transfer_affiliate_reward(self, amount: int) -> TransferResult:
		"""划转邀请奖励到余额"""
		resp = await self.session.fetch_json('POST', self.provider.aff_transfer_path, {'quota': amount})
		return TransferResult(ok=resp.ok, message=resp.message)
