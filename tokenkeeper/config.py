#!/usr/bin/env python3
"""
配置管理模块

Provider 配置：providers.json 文件 > 硬编码默认值，PROVIDERS 环境变量覆盖/扩展。
账号配置：ANYROUTER_ACCOUNTS 环境变量 > accounts.json 文件。
账本配置：LEDGER_* 环境变量。
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

from tokenkeeper.constants import DEFAULT_LEDGER_KEY_TYPE, DEFAULT_SALE_NAME_PREFIX
from tokenkeeper.models import AccountIdentity, DesiredTokenConfig, PayloadError

# Provider 配置文件路径
PROVIDERS_FILE = Path(__file__).parent.parent / 'providers.json'

# 账号配置文件路径（可通过 ACCOUNTS_FILE 环境变量覆盖）
DEFAULT_ACCOUNTS_FILE = Path(__file__).parent.parent / 'accounts.json'


def _env_flag(name: str, default: bool) -> bool:
	value = os.getenv(name, '').strip().lower()
	if not value:
		return default
	return value in ('1', 'true', 'yes', 'on')


@dataclass
class ProviderConfig:
	"""Provider 配置（控制台域名和各接口路径）"""

	name: str
	domain: str
	login_path: str = '/login'
	sign_in_path: str = '/api/user/sign_in'
	user_info_path: str = '/api/user/self'
	token_path: str = '/api/token/'
	aff_transfer_path: str = '/api/user/aff_transfer'
	api_user_key: str = 'new-api-user'

	@classmethod
	def from_dict(cls, name: str, data: dict) -> 'ProviderConfig':
		"""从字典创建 ProviderConfig"""
		return cls(
			name=name,
			domain=data['domain'].rstrip('/'),
			login_path=data.get('login_path', '/login'),
			sign_in_path=data.get('sign_in_path', '/api/user/sign_in'),
			user_info_path=data.get('user_info_path', '/api/user/self'),
			token_path=data.get('token_path', '/api/token/'),
			aff_transfer_path=data.get('aff_transfer_path', '/api/user/aff_transfer'),
			api_user_key=data.get('api_user_key', 'new-api-user'),
		)


@dataclass
class AppConfig:
	"""应用配置"""

	providers: Dict[str, ProviderConfig]
	sale_name_prefix: str = DEFAULT_SALE_NAME_PREFIX
	headless: bool = True

	@classmethod
	def _load_providers_from_file(cls) -> Dict[str, ProviderConfig] | None:
		"""从 providers.json 文件加载配置"""
		if not PROVIDERS_FILE.exists():
			return None

		try:
			with open(PROVIDERS_FILE, 'r', encoding='utf-8') as f:
				providers_data = json.load(f)
		except (OSError, json.JSONDecodeError) as e:
			print(f'[警告] 读取 providers.json 失败: {e}')
			return None

		if not isinstance(providers_data, dict):
			print('[警告] providers.json 必须是 JSON 对象')
			return None

		providers = {}
		for name, provider_data in providers_data.items():
			try:
				providers[name] = ProviderConfig.from_dict(name, provider_data)
			except (KeyError, TypeError, AttributeError) as e:
				print(f'[警告] 解析 provider "{name}" 失败: {e}')

		print(f'[信息] 从 providers.json 加载了 {len(providers)} 个 provider')
		return providers

	@classmethod
	def _get_default_providers(cls) -> Dict[str, ProviderConfig]:
		"""获取默认 provider 配置（硬编码后备）"""
		return {
			'anyrouter': ProviderConfig(name='anyrouter', domain='https://anyrouter.top'),
		}

	@classmethod
	def load_from_env(cls) -> 'AppConfig':
		"""从配置文件/环境变量加载配置

		优先级：
		1. providers.json 文件
		2. 硬编码默认值（后备）
		3. PROVIDERS 环境变量（JSON 格式，覆盖/扩展）
		"""
		providers = cls._load_providers_from_file()

		if providers is None:
			providers = cls._get_default_providers()
			print('[信息] 使用默认 provider 配置')

		providers_str = os.getenv('PROVIDERS')
		if providers_str:
			try:
				providers_data = json.loads(providers_str)
			except json.JSONDecodeError as e:
				print(f'[警告] 解析 PROVIDERS 环境变量失败: {e}')
				providers_data = {}

			if not isinstance(providers_data, dict):
				print('[警告] PROVIDERS 必须是 JSON 对象，忽略自定义 providers')
				providers_data = {}

			for name, provider_data in providers_data.items():
				try:
					providers[name] = ProviderConfig.from_dict(name, provider_data)
				except (KeyError, TypeError, AttributeError) as e:
					print(f'[警告] 解析 provider "{name}" 失败: {e}')

			if providers_data:
				print(f'[信息] 从 PROVIDERS 环境变量加载了 {len(providers_data)} 个自定义 provider')

		return cls(
			providers=providers,
			sale_name_prefix=os.getenv('SALE_NAME_PREFIX') or DEFAULT_SALE_NAME_PREFIX,
			headless=_env_flag('HEADLESS', True),
		)

	def get_provider(self, name: str) -> ProviderConfig | None:
		"""获取指定 provider 配置"""
		return self.providers.get(name)


@dataclass
class LedgerConfig:
	"""账本服务配置，base_url 为空表示不同步"""

	base_url: str = ''
	api_token: str = ''
	key_type: str = DEFAULT_LEDGER_KEY_TYPE

	@classmethod
	def from_env(cls) -> 'LedgerConfig':
		return cls(
			base_url=os.getenv('LEDGER_BASE_URL', '').strip().rstrip('/'),
			api_token=os.getenv('LEDGER_API_TOKEN', '').strip(),
			key_type=os.getenv('LEDGER_KEY_TYPE', '').strip() or DEFAULT_LEDGER_KEY_TYPE,
		)

	@property
	def enabled(self) -> bool:
		return bool(self.base_url)


def parse_cookies(cookies_data: dict | str) -> dict[str, str]:
	"""解析 cookies 数据"""
	if isinstance(cookies_data, dict):
		return cookies_data

	if isinstance(cookies_data, str):
		cookies_dict = {}
		for cookie in cookies_data.split(';'):
			if '=' in cookie:
				key, value = cookie.strip().split('=', 1)
				cookies_dict[key] = value
		return cookies_dict
	return {}


@dataclass
class AccountConfig:
	"""账号配置"""

	session: str
	api_user: str
	provider: str = 'anyrouter'
	name: str | None = None
	username: str | None = None  # 用于拼接出售令牌的来源名称
	account_id: str | None = None  # 账本服务中的账号 ID
	tokens: list[DesiredTokenConfig] = field(default_factory=list)

	@classmethod
	def from_dict(cls, data: dict, index: int) -> 'AccountConfig':
		"""从字典创建 AccountConfig

		session 可以直接给出，也可以放在 cookies（字典或 cookie 字符串）里。
		"""
		session = data.get('session')
		if not session and data.get('cookies'):
			session = parse_cookies(data['cookies']).get('session')
		if not session:
			raise ValueError(f'账号 {index + 1} 缺少 session')

		api_user = data.get('api_user')
		if api_user in (None, ''):
			raise ValueError(f'账号 {index + 1} 缺少 api_user')

		tokens_data = data.get('tokens') or []
		if not isinstance(tokens_data, list):
			raise ValueError(f'账号 {index + 1} 的 tokens 必须是数组')
		try:
			tokens = [DesiredTokenConfig.from_dict(t) for t in tokens_data]
		except (PayloadError, TypeError, ValueError) as e:
			raise ValueError(f'账号 {index + 1} 的令牌配置无效: {e}') from e

		account_id = data.get('_id', data.get('account_id'))

		return cls(
			session=str(session),
			api_user=str(api_user),
			provider=data.get('provider', 'anyrouter'),
			name=data.get('name') or None,
			username=data.get('username'),
			account_id=str(account_id) if account_id is not None else None,
			tokens=tokens,
		)

	@property
	def identity(self) -> AccountIdentity:
		return AccountIdentity(session=self.session, api_user=self.api_user)

	def get_display_name(self, index: int) -> str:
		"""获取显示名称"""
		return self.name if self.name else f'Account {index + 1}'


def _read_accounts_source() -> str | None:
	"""读取账号配置原文：环境变量优先，其次配置文件"""
	accounts_str = os.getenv('ANYROUTER_ACCOUNTS')
	if accounts_str:
		return accounts_str

	accounts_file = Path(os.getenv('ACCOUNTS_FILE') or DEFAULT_ACCOUNTS_FILE)
	if accounts_file.exists():
		try:
			return accounts_file.read_text(encoding='utf-8')
		except OSError as e:
			print(f'错误: 读取 {accounts_file} 失败: {e}')
			return None

	print('错误: 未找到 ANYROUTER_ACCOUNTS 环境变量或 accounts.json 文件')
	return None


def load_accounts_config() -> list[AccountConfig] | None:
	"""加载账号配置，格式错误时返回 None"""
	accounts_str = _read_accounts_source()
	if not accounts_str:
		return None

	try:
		accounts_data = json.loads(accounts_str)
	except json.JSONDecodeError as e:
		print(f'错误: 账号配置 JSON 解析失败: {e}')
		print('[提示] 请使用单行格式: [{"session":"...","api_user":"..."}]')
		return None

	if not isinstance(accounts_data, list):
		print('错误: 账号配置必须使用数组格式 [{}]')
		return None

	accounts = []
	for i, account_dict in enumerate(accounts_data):
		if not isinstance(account_dict, dict):
			print(f'错误: 账号 {i + 1} 配置格式不正确')
			return None

		try:
			accounts.append(AccountConfig.from_dict(account_dict, i))
		except ValueError as e:
			print(f'错误: {e}')
			return None

	return accounts
