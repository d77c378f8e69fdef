#!/usr/bin/env python3
"""单账号签到流程

签到 -> 用户信息 -> （封禁则结束）-> 划转邀请奖励 -> 令牌对账 -> 汇总令牌信息

任何未捕获的异常都转换为 CheckinResult(success=False)，浏览器会话在所有路径上都会关闭。
"""

from typing import Any, Callable

from tokenkeeper.config import AccountConfig, AppConfig, LedgerConfig, ProviderConfig
from tokenkeeper.console import ConsoleClient
from tokenkeeper.constants import DEFAULT_SALE_NAME_PREFIX
from tokenkeeper.ledger import LedgerClient
from tokenkeeper.models import CheckinResult, to_units
from tokenkeeper.reconciler import TokenReconciler
from tokenkeeper.session import open_browser_session


async def perform_checkin(
	console: ConsoleClient,
	ledger: LedgerClient,
	account: AccountConfig,
	sale_name_prefix: str = DEFAULT_SALE_NAME_PREFIX,
	log_fn: Callable[[str], None] | None = None
) -> CheckinResult:
	"""在已建立的会话上执行签到和令牌管理"""

	def log(msg: str) -> None:
		if log_fn:
			log_fn(msg)
		else:
			print(msg)

	sign_in = await console.sign_in()
	if not sign_in.ok:
		return CheckinResult(success=False, error=sign_in.error or '签到失败')

	log('[信息] 获取用户信息...')
	user_info = await console.fetch_user_snapshot()
	if user_info is None:
		log('[警告] 签到成功但无法获取用户信息，跳过令牌管理')
		return CheckinResult(success=True)

	if user_info.is_banned:
		log(f'[警告] 账号 {user_info.username} 已被封禁 (status={user_info.status})')
		return CheckinResult(success=True, user_info=user_info)

	log(f'[信息] 用户名: {user_info.username}')
	log(f'[信息] 邮箱: {user_info.email}')
	log(f'[信息] 余额: ${to_units(user_info.quota):.2f}')
	log(f'[信息] 已使用: ${to_units(user_info.used_quota):.2f}')
	log(f'[信息] 推广码: {user_info.aff_code}')

	if user_info.aff_quota > 0:
		log(f'[信息] 检测到邀请奖励: ${to_units(user_info.aff_quota):.2f}')
		log('[处理中] 开始划转邀请奖励到余额...')
		transfer = await console.transfer_affiliate_reward(user_info.aff_quota)

		# 不管划转成功与否，本地都按已划转计算余额
		user_info.apply_reward_transfer()

		if transfer.ok:
			log('[成功] 划转成功!')
			log(f'[信息] 划转后余额: ${to_units(user_info.quota):.2f}')
		else:
			log(f'[失败] 划转失败: {transfer.message}')
			log(f'[信息] 当前余额: ${to_units(user_info.quota):.2f}')

	reconciler = TokenReconciler(
		console,
		ledger,
		sale_name_prefix=sale_name_prefix,
		username=account.username or user_info.username,
		account_id=account.account_id,
		log_fn=log_fn,
	)
	outcome = await reconciler.reconcile(account.tokens)

	if outcome.tokens:
		user_info.tokens = [t.to_summary() for t in outcome.tokens]
		log(f'[信息] 成功获取 {len(user_info.tokens)} 个令牌信息')

	return CheckinResult(success=True, user_info=user_info)


async def run_account_checkin(
	account: AccountConfig,
	provider: ProviderConfig,
	app_config: AppConfig | None = None,
	ledger_config: LedgerConfig | None = None,
	session_factory: Callable[..., Any] = open_browser_session,
	log_fn: Callable[[str], None] | None = None
) -> CheckinResult:
	"""处理单个账号：启动独立的浏览器会话，执行完整流程"""

	def log(msg: str) -> None:
		if log_fn:
			log_fn(msg)
		else:
			print(msg)

	sale_name_prefix = app_config.sale_name_prefix if app_config else DEFAULT_SALE_NAME_PREFIX
	headless = app_config.headless if app_config else True

	log(f'\n[签到] 开始处理 Session 签到 (API User: {account.api_user})')

	try:
		identity = account.identity
		async with session_factory(
			provider.domain,
			identity,
			login_path=provider.login_path,
			api_user_key=provider.api_user_key,
			headless=headless,
			log_fn=log_fn,
		) as session:
			console = ConsoleClient(session, provider, log_fn=log_fn)
			ledger = LedgerClient(ledger_config or LedgerConfig.from_env(), log_fn=log_fn)
			return await perform_checkin(console, ledger, account, sale_name_prefix, log_fn)
	except Exception as e:
		log(f'[失败] 签到过程中发生错误: {e}')
		return CheckinResult(success=False, error=str(e) or e.__class__.__name__)
