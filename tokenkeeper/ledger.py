#!/usr/bin/env python3
"""账本服务客户端

把出售令牌的状态同步到外部账本：
- addKeys: 批量写入新创建的出售 Key
- updateKeyInfo: incData 为增量（账本侧累加），updateData 为覆盖写

额度单位均为美元（最小单位 / QUOTA_DIVISOR）。
"""

from typing import Any, Callable

import httpx
from tenacity import (
	retry,
	retry_if_exception_type,
	stop_after_attempt,
	wait_exponential,
)

from tokenkeeper.config import LedgerConfig
from tokenkeeper.constants import HTTP_TIMEOUT_SECONDS
from tokenkeeper.models import LedgerKeyRecord, LedgerResult, mask_key

# 只重试连接建立阶段的错误：请求没有到达账本，重发不会重复累加 incData
_connect_retry = retry(
	retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
	stop=stop_after_attempt(3),
	wait=wait_exponential(multiplier=1, min=2, max=10),
	reraise=True,
)


class LedgerClient:
	"""外部账本客户端（无状态，每次调用新建 HTTP 连接）"""

	def __init__(
		self,
		config: LedgerConfig,
		transport: httpx.AsyncBaseTransport | None = None,
		log_fn: Callable[[str], None] | None = None
	):
		self.config = config
		self._transport = transport
		self.log_fn = log_fn

	def log(self, msg: str) -> None:
		if self.log_fn:
			self.log_fn(msg)
		else:
			print(msg)

	@property
	def enabled(self) -> bool:
		return self.config.enabled

	@property
	def key_type(self) -> str:
		return self.config.key_type

	def _headers(self) -> dict[str, str]:
		headers = {'Content-Type': 'application/json'}
		if self.config.api_token:
			headers['Authorization'] = f'Bearer {self.config.api_token}'
		return headers

	@_connect_retry
	async def _post(self, action: str, payload: dict) -> httpx.Response:
		async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS, transport=self._transport) as client:
			return await client.post(f'{self.config.base_url}/{action}', json=payload, headers=self._headers())

	async def _call(self, action: str, payload: dict) -> LedgerResult:
		if not self.enabled:
			return LedgerResult(success=False, error='账本服务未配置')

		try:
			response = await self._post(action, payload)
		except httpx.HTTPError as e:
			return LedgerResult(success=False, error=f'{action} 请求失败: {str(e)[:80]}')

		try:
			data: Any = response.json()
		except ValueError:
			return LedgerResult(success=False, error=f'{action} 返回非 JSON 响应 (HTTP {response.status_code})')

		if not isinstance(data, dict):
			data = {}

		if response.status_code >= 400 or not data.get('success'):
			error = data.get('error') or data.get('message') or f'HTTP {response.status_code}'
			return LedgerResult(success=False, error=str(error))

		return LedgerResult(success=True)

	async def add_keys(self, records: list[LedgerKeyRecord]) -> LedgerResult:
		"""批量写入新 Key"""
		if not records:
			return LedgerResult(success=True)

		self.log(f'[账本] 批量上传 {len(records)} 个 Key...')
		return await self._call('addKeys', {'keys': [r.to_dict() for r in records]})

	async def update_key_info(
		self,
		key: str,
		inc_data: dict | None = None,
		update_data: dict | None = None
	) -> LedgerResult:
		"""更新 Key 信息

		inc_data 和 update_data 至少提供一个。
		"""
		if not inc_data and not update_data:
			raise ValueError('inc_data 和 update_data 不能同时为空')

		payload: dict[str, Any] = {'key': key}
		if inc_data:
			payload['incData'] = inc_data
		if update_data:
			payload['updateData'] = update_data

		self.log(f'[账本] 更新 Key {mask_key(key)} 信息...')
		return await self._call('updateKeyInfo', payload)
