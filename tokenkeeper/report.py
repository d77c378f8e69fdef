#!/usr/bin/env python3
"""运行结果汇总模块

职责：
1. 多账号运行结果的汇总统计
2. 汇总文本生成
3. 结果文件的原子写入（供外部驱动回填下一次的令牌配置）
"""

import json
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime

from tokenkeeper.constants import RESULTS_FILE
from tokenkeeper.models import CheckinResult, to_units


def _atomic_write(file_path: str, content: str) -> None:
	"""原子性写入文件（write-to-temp + rename 模式）

	确保写入过程中崩溃不会损坏原文件。
	"""
	dir_path = os.path.dirname(file_path) or '.'
	os.makedirs(dir_path, exist_ok=True)
	fd, temp_path = tempfile.mkstemp(dir=dir_path, suffix='.tmp')
	try:
		with os.fdopen(fd, 'w', encoding='utf-8') as f:
			f.write(content)
			f.flush()
			os.fsync(f.fileno())
		os.replace(temp_path, file_path)  # 原子性替换
	except Exception:
		try:
			os.unlink(temp_path)
		except OSError:
			pass
		raise


@dataclass
class RunSummary:
	"""运行汇总"""

	total: int = 0
	success: int = 0
	banned: int = 0
	failed: int = 0
	results: list[CheckinResult] = field(default_factory=list)

	def add_result(self, result: CheckinResult) -> None:
		self.results.append(result)
		self.total += 1

		if not result.success:
			self.failed += 1
		elif result.banned:
			self.banned += 1
		else:
			self.success += 1


def format_result_line(result: CheckinResult) -> str:
	name = result.account_name or '未命名账号'
	if not result.success:
		return f'[发生错误] {name} | 错误: {result.error}'

	user = result.user_info
	if user is None:
		return f'[签到成功] {name} | 用户信息获取失败'
	if user.is_banned:
		return f'[已封禁] {name} | 用户: {user.username}'

	line = f'[签到成功] {name} | 余额: ${to_units(user.quota):.2f} | 已使用: ${to_units(user.used_quota):.2f}'
	if user.tokens is not None:
		line += f' | 令牌: {len(user.tokens)} 个'
	return line


def build_summary_content(summary: RunSummary) -> str:
	"""构建汇总内容（与日志格式一致）"""
	lines = [f'[时间] 执行时间: {datetime.now().strftime("%Y-%m-%d %H:%M:%S")}', '']

	for result in summary.results:
		lines.append(format_result_line(result))

	lines.append('')
	lines.append('[统计] 签到结果:')
	lines.append(f'  总计: {summary.total} | 成功: {summary.success} | 封禁: {summary.banned} | 失败: {summary.failed}')

	if summary.failed > 0:
		lines.append(f'[警告] 有 {summary.failed} 个账号签到失败')

	return '\n'.join(lines)


def save_results(results: list[CheckinResult], file_path: str = RESULTS_FILE) -> bool:
	"""保存运行结果（JSON 数组）"""
	try:
		content = json.dumps([r.to_dict() for r in results], ensure_ascii=False, indent=2)
		_atomic_write(file_path, content)
		return True
	except (OSError, TypeError, ValueError) as e:
		print(f'[警告] 保存运行结果失败: {e}')
		return False
