#!/usr/bin/env python3
"""AnyRouter 多账号签到 + 令牌管理脚本

每个账号使用独立的浏览器会话：
- 注入 session 后调用签到 API
- 划转邀请奖励
- 按账号配置中的 tokens 对账令牌（删除/创建/补充额度）
- 把出售令牌的状态同步到账本服务

运行结果写入 data/checkin_results.json，其中的 tokens 可直接作为下一次的账号配置。
"""

import asyncio
import os
import sys
from datetime import datetime

from dotenv import load_dotenv

from tokenkeeper.config import AccountConfig, AppConfig, LedgerConfig, load_accounts_config
from tokenkeeper.constants import DATA_DIR, LOG_FILE, MAX_CONCURRENT_ACCOUNTS, RESULTS_FILE
from tokenkeeper.models import CheckinResult
from tokenkeeper.orchestrator import run_account_checkin
from tokenkeeper.report import RunSummary, build_summary_content, save_results

# 尝试强制 UTF-8 输出（尽量减少 Windows 终端中文乱码）
if hasattr(sys.stdout, 'reconfigure'):
	sys.stdout.reconfigure(encoding='utf-8', errors='replace')
if hasattr(sys.stderr, 'reconfigure'):
	sys.stderr.reconfigure(encoding='utf-8', errors='replace')

load_dotenv()


# ============ 日志管理 ============


class Logger:
	"""日志管理器，同时输出到控制台和文件"""

	def __init__(self, log_file: str):
		self.log_file = log_file
		self.terminal = sys.stdout

	def write(self, message: str) -> None:
		"""写入消息到控制台和文件"""
		self.terminal.write(message)
		try:
			with open(self.log_file, 'a', encoding='utf-8') as f:
				f.write(message)
		except IOError as e:
			# 日志写入失败时输出到终端（而非静默忽略）
			self.terminal.write(f'\n[日志错误] 写入日志文件失败: {e}\n')

	def flush(self) -> None:
		"""刷新输出"""
		self.terminal.flush()


def setup_logging() -> None:
	"""设置日志输出"""
	os.makedirs(DATA_DIR, exist_ok=True)
	sys.stdout = Logger(LOG_FILE)
	sys.stderr = sys.stdout


# ============ 主程序 ============


async def process_account(
	account: AccountConfig,
	index: int,
	app_config: AppConfig,
	ledger_config: LedgerConfig
) -> CheckinResult:
	"""处理单个账号（未知 provider 直接返回失败）"""
	account_name = account.get_display_name(index)
	print(f'\n[处理中] 开始处理 {account_name}')

	provider = app_config.get_provider(account.provider)
	if not provider:
		print(f'[失败] {account_name}: 配置中未找到 Provider "{account.provider}"')
		return CheckinResult(success=False, error=f'未知 Provider: {account.provider}', account_name=account_name)

	result = await run_account_checkin(account, provider, app_config, ledger_config)
	result.account_name = account_name

	if result.success:
		print(f'[成功] {account_name}: 处理完成')
	else:
		print(f'[失败] {account_name}: {result.error}')
	return result


async def run_checkin() -> RunSummary:
	"""执行签到流程

	账号之间互不共享状态，使用信号量控制同时运行的浏览器数量。
	"""
	print('[系统] AnyRouter 签到 + 令牌管理脚本已启动')
	print(f'[时间] 执行时间: {datetime.now().strftime("%Y-%m-%d %H:%M:%S")}')

	app_config = AppConfig.load_from_env()
	print(f'[信息] 已加载 {len(app_config.providers)} 个 provider 配置')

	ledger_config = LedgerConfig.from_env()
	if ledger_config.enabled:
		print(f'[信息] 账本服务: {ledger_config.base_url}')
	else:
		print('[信息] 未配置 LEDGER_BASE_URL，跳过账本同步')

	accounts = load_accounts_config()
	if not accounts:
		print('[失败] 无法加载账号配置，程序退出')
		sys.exit(1)

	print(f'[信息] 找到 {len(accounts)} 个账号配置')

	semaphore = asyncio.Semaphore(MAX_CONCURRENT_ACCOUNTS)

	async def process_with_semaphore(account: AccountConfig, index: int) -> CheckinResult:
		async with semaphore:
			return await process_account(account, index, app_config, ledger_config)

	tasks = [process_with_semaphore(account, i) for i, account in enumerate(accounts)]
	results = await asyncio.gather(*tasks)

	summary = RunSummary()
	for result in results:
		summary.add_result(result)

	if save_results(summary.results, RESULTS_FILE):
		print(f'[信息] 已保存运行结果到 {RESULTS_FILE}')

	return summary


async def main() -> None:
	"""主函数"""
	setup_logging()

	if '--manual' not in sys.argv:
		print('\n' + '=' * 60)
		print('新一轮签到开始')
		print('=' * 60)

	summary = await run_checkin()
	print(build_summary_content(summary))

	sys.exit(0 if summary.failed == 0 else 1)


def run_main() -> None:
	"""运行主函数的包装函数"""
	try:
		asyncio.run(main())
	except KeyboardInterrupt:
		print('\n[警告] 程序被用户中断')
		sys.exit(1)


if __name__ == '__main__':
	run_main()
