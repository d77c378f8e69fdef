#!/usr/bin/env python3
"""运行结果汇总模块测试"""

import json
import os
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from fakes import make_user

from tokenkeeper.models import CheckinResult, UserSnapshot
from tokenkeeper.report import (
	RunSummary,
	_atomic_write,
	build_summary_content,
	format_result_line,
	save_results,
)


def ok_result(name: str = 'a', **user) -> CheckinResult:
	return CheckinResult(success=True, user_info=UserSnapshot.from_api(make_user(**user)), account_name=name)


class TestRunSummary:
	"""RunSummary 测试"""

	def test_counts(self):
		summary = RunSummary()
		summary.add_result(ok_result('a'))
		summary.add_result(ok_result('b', status=2))
		summary.add_result(CheckinResult(success=False, error='x', account_name='c'))

		assert (summary.total, summary.success, summary.banned, summary.failed) == (3, 1, 1, 1)


class TestFormatting:
	"""汇总文本"""

	def test_success_line(self):
		result = ok_result('主账号', quota=2500000, used_quota=500000)
		result.user_info.tokens = [{'id': 1}, {'id': 2}]

		line = format_result_line(result)

		assert line == '[签到成功] 主账号 | 余额: $5.00 | 已使用: $1.00 | 令牌: 2 个'

	def test_failure_line(self):
		line = format_result_line(CheckinResult(success=False, error='HTTP 403', account_name='x'))
		assert line == '[发生错误] x | 错误: HTTP 403'

	def test_banned_line(self):
		assert format_result_line(ok_result('x', status=2)).startswith('[已封禁] x')

	def test_missing_user_info(self):
		assert '用户信息获取失败' in format_result_line(CheckinResult(success=True))

	def test_summary_content(self):
		summary = RunSummary()
		summary.add_result(ok_result('a'))
		summary.add_result(CheckinResult(success=False, error='x', account_name='c'))

		content = build_summary_content(summary)

		assert '总计: 2 | 成功: 1 | 封禁: 0 | 失败: 1' in content
		assert '[警告] 有 1 个账号签到失败' in content


class TestSaveResults:
	"""结果文件写入"""

	def test_writes_json(self, tmp_path):
		file_path = str(tmp_path / 'out' / 'results.json')
		result = ok_result('a')
		result.user_info.tokens = [{'id': 1, 'supplement_quota': 0}]

		assert save_results([result], file_path) is True

		with open(file_path, encoding='utf-8') as f:
			data = json.load(f)
		assert data[0]['success'] is True
		assert data[0]['userInfo']['tokens'] == [{'id': 1, 'supplement_quota': 0}]

	def test_atomic_write_replaces_and_cleans_up(self, tmp_path):
		file_path = str(tmp_path / 'a.txt')
		_atomic_write(file_path, 'old')
		_atomic_write(file_path, '新内容')

		with open(file_path, encoding='utf-8') as f:
			assert f.read() == '新内容'
		assert [p for p in os.listdir(tmp_path) if p.endswith('.tmp')] == []

	def test_unwritable_target(self, tmp_path):
		blocker = tmp_path / 'file'
		blocker.write_text('x')

		assert save_results([ok_result()], str(blocker / 'results.json')) is False
