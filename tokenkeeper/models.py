#!/usr/bin/env python3
"""数据结构模块

职责：
1. 远程控制台响应的类型化封装（在客户端边界完成校验）
2. 令牌配置（期望状态）与远程令牌（实际状态）
3. 账本记录与同步动作
4. 单账号签到结果

设计原则：
- 未知字段忽略，缺少必需字段抛出 PayloadError，由调用方转换为失败结果
- 额度一律使用整数最小单位，上传账本时才换算为美元
"""

from dataclasses import dataclass, field
from typing import Any

from tokenkeeper.constants import QUOTA_DIVISOR, USER_STATUS_BANNED


class PayloadError(ValueError):
	"""远程响应缺少必需字段或字段类型错误"""

	pass


def to_units(quota: int | None) -> float:
	"""最小单位额度换算为美元"""
	return (quota or 0) / QUOTA_DIVISOR


def mask_key(key: str | None) -> str:
	"""隐藏 key 内容，只保留末尾 4 位"""
	if not key:
		return '<empty>'
	return f'***{key[-4:]}'


def _require(data: dict, name: str) -> Any:
	if name not in data or data[name] is None:
		raise PayloadError(f'缺少字段: {name}')
	return data[name]


def _require_int(data: dict, name: str) -> int:
	value = _require(data, name)
	if isinstance(value, bool) or not isinstance(value, int):
		raise PayloadError(f'字段 {name} 不是整数: {value!r}')
	return value


def _optional_int(data: dict, name: str, default: int = 0) -> int:
	value = data.get(name)
	if value is None:
		return default
	if isinstance(value, bool) or not isinstance(value, (int, float)):
		raise PayloadError(f'字段 {name} 不是数字: {value!r}')
	return int(value)


# ============ 账号凭据 ============


@dataclass(frozen=True)
class AccountIdentity:
	"""账号凭据：session cookie + API 用户标识，两者缺一不可"""

	session: str
	api_user: str

	def __post_init__(self):
		if not self.session or not str(self.session).strip():
			raise ValueError('session 不能为空')
		if not self.api_user or not str(self.api_user).strip():
			raise ValueError('api_user 不能为空')


# ============ 远程控制台响应 ============


@dataclass
class ApiResponse:
	"""浏览器内 fetch 的原始结果

	status 为 None 表示请求未到达服务器（网络错误或响应非 JSON）。
	"""

	status: int | None = None
	data: Any = None
	error: str | None = None

	@classmethod
	def from_page_result(cls, result: Any) -> 'ApiResponse':
		"""从 page.evaluate 返回值创建"""
		if not isinstance(result, dict):
			return cls(error=f'无效的页面返回值: {result!r}'[:100])
		if result.get('error'):
			return cls(status=result.get('status'), error=str(result['error']))
		return cls(status=result.get('status'), data=result.get('data'))

	@property
	def body(self) -> dict:
		return self.data if isinstance(self.data, dict) else {}

	@property
	def ok(self) -> bool:
		"""HTTP 200 且业务层 success 为 true"""
		return self.error is None and self.status == 200 and self.body.get('success') is True

	@property
	def message(self) -> str | None:
		"""错误信息（传输错误优先，其次远程返回的 message/msg）"""
		if self.error:
			return self.error
		return self.body.get('message') or self.body.get('msg') or None


@dataclass
class SignInResult:
	"""签到结果"""

	ok: bool
	raw: dict = field(default_factory=dict)
	error: str | None = None


@dataclass
class TransferResult:
	"""邀请奖励划转结果"""

	ok: bool
	message: str | None = None


@dataclass
class UserSnapshot:
	"""用户信息快照（每次运行签到后获取一次）"""

	username: str
	email: str | None
	quota: int
	used_quota: int
	aff_code: str | None
	aff_quota: int
	status: int | None
	tokens: list[dict] | None = None

	@classmethod
	def from_api(cls, data: Any) -> 'UserSnapshot':
		"""从 /api/user/self 的 data 字段创建"""
		if not isinstance(data, dict):
			raise PayloadError('用户信息不是 JSON 对象')
		return cls(
			username=str(_require(data, 'username')),
			email=data.get('email'),
			quota=_require_int(data, 'quota'),
			used_quota=_optional_int(data, 'used_quota'),
			aff_code=data.get('aff_code'),
			aff_quota=_optional_int(data, 'aff_quota'),
			status=data.get('status'),
		)

	@property
	def is_banned(self) -> bool:
		return self.status == USER_STATUS_BANNED

	def apply_reward_transfer(self) -> int:
		"""把邀请奖励计入本地余额并清零，返回划转的额度"""
		amount = self.aff_quota
		self.quota += amount
		self.aff_quota = 0
		return amount

	def to_dict(self) -> dict:
		result = {
			'username': self.username,
			'email': self.email,
			'quota': self.quota,
			'used_quota': self.used_quota,
			'aff_code': self.aff_code,
			'aff_quota': self.aff_quota,
			'status': self.status,
			'banned': self.is_banned,
		}
		if self.tokens is not None:
			result['tokens'] = self.tokens
		return result


@dataclass
class RemoteToken:
	"""远程令牌

	raw 保存远程返回的完整记录，更新令牌时需要回传完整数据。
	"""

	id: int
	key: str | None
	name: str | None
	unlimited_quota: bool
	remain_quota: int
	used_quota: int
	raw: dict = field(default_factory=dict, repr=False)

	@classmethod
	def from_api(cls, data: Any) -> 'RemoteToken':
		if not isinstance(data, dict):
			raise PayloadError('令牌记录不是 JSON 对象')
		return cls(
			id=_require_int(data, 'id'),
			key=data.get('key') or None,
			name=data.get('name'),
			unlimited_quota=bool(data.get('unlimited_quota', False)),
			remain_quota=_optional_int(data, 'remain_quota'),
			used_quota=_optional_int(data, 'used_quota'),
			raw=dict(data),
		)

	def with_remain_quota(self, remain_quota: int) -> dict:
		"""合并新的剩余额度，返回完整令牌记录（远程 API 不支持部分更新）"""
		return {**self.raw, 'remain_quota': remain_quota}

	def to_summary(self) -> dict:
		"""过滤后的令牌信息，作为下一次运行的期望配置"""
		return {
			'id': self.id,
			'key': self.key,
			'name': self.name,
			'unlimited_quota': self.unlimited_quota,
			'used_quota': self.used_quota,
			'remain_quota': self.remain_quota,
			'supplement_quota': 0,
		}


# ============ 期望配置 ============


@dataclass
class DesiredTokenConfig:
	"""调用方提供的令牌期望状态

	- id 为空：待创建的新令牌
	- id + is_deleted：删除该令牌
	- supplement_quota > 0：为该令牌补充额度（使用后清零）
	- used_quota：上次记录的已使用额度，用于检测变化
	"""

	id: int | None = None
	name: str | None = None
	key: str | None = None
	is_deleted: bool = False
	unlimited_quota: bool = False
	remain_quota: int | None = None
	supplement_quota: int = 0
	is_sold: bool | None = None
	used_quota: int = 0

	@classmethod
	def from_dict(cls, data: dict) -> 'DesiredTokenConfig':
		if not isinstance(data, dict):
			raise PayloadError('令牌配置必须是 JSON 对象')
		token_id = data.get('id')
		remain_quota = data.get('remain_quota')
		is_sold = data.get('is_sold')
		return cls(
			id=int(token_id) if token_id not in (None, '', 0) else None,
			name=data.get('name') or None,
			key=data.get('key') or None,
			is_deleted=bool(data.get('is_deleted', False)),
			unlimited_quota=bool(data.get('unlimited_quota', False)),
			remain_quota=int(remain_quota) if remain_quota is not None else None,
			supplement_quota=int(data.get('supplement_quota') or 0),
			# 只接受真正的布尔值，"false" 之类的字符串不算已售出
			is_sold=is_sold if isinstance(is_sold, bool) else None,
			used_quota=int(data.get('used_quota') or 0),
		)

	def is_sale_token(self, sale_prefix: str) -> bool:
		"""名称前缀或 is_sold 标记任一满足即视为出售令牌"""
		return bool(self.name and self.name.startswith(sale_prefix)) or self.is_sold is True


# ============ 账本 ============


@dataclass
class LedgerKeyRecord:
	"""账本服务中的 Key 记录（额度单位：美元）"""

	key: str
	key_type: str
	is_sold: bool
	quota: float
	source_name: str
	account_id: str | None

	def to_dict(self) -> dict:
		return {
			'key': self.key,
			'key_type': self.key_type,
			'is_sold': self.is_sold,
			'quota': self.quota,
			'source_name': self.source_name,
			'account_id': self.account_id,
		}


@dataclass
class LedgerResult:
	"""账本调用结果"""

	success: bool
	error: str | None = None


@dataclass
class PendingSale:
	"""已创建、等待上传账本的出售令牌（此时还不知道 key）"""

	name: str
	remain_quota: int | None


@dataclass
class SyncAction:
	"""一次账本同步动作的记录"""

	kind: str  # supplement / upload / drift
	key: str
	success: bool
	error: str | None = None


@dataclass
class ReconcileOutcome:
	"""令牌对账结果"""

	tokens: list[RemoteToken] = field(default_factory=list)
	pending_sale_uploads: list[PendingSale] = field(default_factory=list)
	sync_actions: list[SyncAction] = field(default_factory=list)


# ============ 签到结果 ============


@dataclass
class CheckinResult:
	"""单个账号的运行结果"""

	success: bool
	user_info: UserSnapshot | None = None
	error: str | None = None
	account_name: str | None = None

	@property
	def banned(self) -> bool:
		return bool(self.user_info and self.user_info.is_banned)

	def to_dict(self) -> dict:
		result: dict[str, Any] = {'success': self.success}
		if self.account_name:
			result['account_name'] = self.account_name
		if self.user_info is not None:
			result['userInfo'] = self.user_info.to_dict()
		if self.error:
			result['error'] = self.error
		return result
