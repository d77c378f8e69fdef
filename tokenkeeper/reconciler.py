#!/usr/bin/env python3
"""令牌对账模块

根据账号配置中的期望令牌列表，对远程令牌执行增删改，并把出售令牌的状态同步到账本。

处理顺序固定（后面的步骤依赖最新的远程令牌列表）：
1. 删除：有 id 且 is_deleted 的令牌
2. 创建：没有 id 的令牌，出售令牌记入待上传列表
3. 兜底：账号下没有任何令牌时创建一个无限额度令牌
4. 补充额度：supplement_quota > 0 的令牌，完整记录回写，成功后同步账本
5. 上传出售令牌：按名称在刷新后的列表中找到 key，批量 addKeys
6. 额度变化同步：出售令牌的 used_quota 有变化（或已售出）时覆盖写账本

单个令牌操作失败只记录日志，不影响其余令牌和整个流程。
"""

import time
from typing import Callable

from tokenkeeper.console import ConsoleClient
from tokenkeeper.constants import DEFAULT_SALE_NAME_PREFIX, DEFAULT_TOKEN_QUOTA
from tokenkeeper.ledger import LedgerClient
from tokenkeeper.models import (
	DesiredTokenConfig,
	LedgerKeyRecord,
	PendingSale,
	ReconcileOutcome,
	RemoteToken,
	SyncAction,
	mask_key,
	to_units,
)


def now_ms() -> int:
	return int(time.time() * 1000)


def quota_snapshot(remain_quota: int, used_quota: int) -> dict:
	"""账本覆盖写数据：剩余/已用额度（美元）+ 同步时间"""
	return {
		'remain_quota': to_units(remain_quota),
		'used_quota': to_units(used_quota),
		'quota_update_date': now_ms(),
	}


class TokenReconciler:
	"""单账号令牌对账器，每次运行新建一个"""

	def __init__(
		self,
		console: ConsoleClient,
		ledger: LedgerClient,
		sale_name_prefix: str = DEFAULT_SALE_NAME_PREFIX,
		username: str | None = None,
		account_id: str | None = None,
		log_fn: Callable[[str], None] | None = None
	):
		self.console = console
		self.ledger = ledger
		self.sale_name_prefix = sale_name_prefix
		self.username = username
		self.account_id = account_id
		self.log_fn = log_fn

	def log(self, msg: str) -> None:
		if self.log_fn:
			self.log_fn(msg)
		else:
			print(msg)

	async def reconcile(
		self,
		desired: list[DesiredTokenConfig],
		remote_tokens: list[RemoteToken] | None = None
	) -> ReconcileOutcome:
		"""执行完整对账流程

		Args:
		    desired: 期望令牌配置（补充额度使用后会被清零）
		    remote_tokens: 已获取的远程令牌列表；为 None 或本次有增删时重新获取
		"""
		outcome = ReconcileOutcome()

		if desired:
			self.log(f'[令牌管理] 发现账号配置中有 {len(desired)} 个令牌配置，开始处理...')

		deleted = await self._delete_pass(desired)
		created, outcome.pending_sale_uploads = await self._create_pass(desired)

		if remote_tokens is None or deleted or created:
			tokens = await self.console.list_tokens()
		else:
			tokens = list(remote_tokens)

		if not tokens:
			tokens = await self._bootstrap()

		outcome.sync_actions.extend(await self._supplement_pass(desired, tokens))
		outcome.sync_actions.extend(await self._upload_sales(outcome.pending_sale_uploads, tokens))
		outcome.sync_actions.extend(await self._sync_drift(desired, tokens))
		outcome.tokens = tokens

		if desired:
			self.log('[令牌管理] 令牌管理完成')
		return outcome

	async def _delete_pass(self, desired: list[DesiredTokenConfig]) -> int:
		"""删除标记了 is_deleted 的令牌，返回成功删除的数量"""
		deleted = 0
		seen: set[int] = set()
		for config in desired:
			if config.id is None or not config.is_deleted or config.id in seen:
				continue
			seen.add(config.id)
			self.log(f'[令牌管理] 准备删除令牌 ID: {config.id}')
			if await self.console.delete_token(config.id):
				deleted += 1
		return deleted

	async def _create_pass(self, desired: list[DesiredTokenConfig]) -> tuple[int, list[PendingSale]]:
		"""创建没有 id 的令牌，返回 (成功数量, 待上传的出售令牌)"""
		created = 0
		pending: list[PendingSale] = []
		for config in desired:
			if config.id is not None:
				continue
			self.log('[令牌管理] 准备创建新令牌')
			ok = await self.console.create_token(
				name=config.name,
				unlimited_quota=config.unlimited_quota,
				remain_quota=config.remain_quota,
			)
			if not ok:
				continue
			created += 1
			# 新令牌的 id/key 要等重新获取列表后按名称匹配
			if config.name and config.name.startswith(self.sale_name_prefix):
				# 与创建请求一致：有限额度令牌未指定额度时按默认额度创建
				sale_quota = None if config.unlimited_quota else (config.remain_quota or DEFAULT_TOKEN_QUOTA)
				pending.append(PendingSale(name=config.name, remain_quota=sale_quota))
		return created, pending

	async def _bootstrap(self) -> list[RemoteToken]:
		"""账号下没有令牌时创建一个无限额度令牌"""
		self.log('[令牌管理] 账号下没有令牌，创建默认令牌')
		if await self.console.create_token(unlimited_quota=True):
			return await self.console.list_tokens()
		return []

	async def _supplement_pass(self, desired: list[DesiredTokenConfig], tokens: list[RemoteToken]) -> list[SyncAction]:
		actions: list[SyncAction] = []
		to_supplement = [c for c in desired if c.supplement_quota > 0]
		if not to_supplement:
			return actions

		self.log(f'[令牌管理] 发现 {len(to_supplement)} 个令牌需要补充额度')
		by_id = {t.id: t for t in tokens}

		for config in to_supplement:
			delta = config.supplement_quota
			if delta <= 0:
				continue
			matched = by_id.get(config.id) if config.id is not None else None
			if matched is None:
				self.log(f'[令牌管理] 未找到ID为 {config.id} 的令牌，跳过补充')
				continue

			# 补充额度只消费一次
			config.supplement_quota = 0

			new_remain_quota = matched.remain_quota + delta
			self.log(f'[令牌管理] 令牌 {matched.id} 补充额度: {delta} -> 新额度: {new_remain_quota}')

			updated = await self.console.update_token(matched.with_remain_quota(new_remain_quota))
			if updated is None:
				continue

			matched.remain_quota = updated.remain_quota
			matched.used_quota = updated.used_quota
			matched.raw.update(updated.raw)
			self.log(f'[令牌管理] 令牌 {matched.id} 额度补充成功，当前额度: {updated.remain_quota}')

			key = config.key or matched.key
			if not key or not self.ledger.enabled:
				continue

			result = await self.ledger.update_key_info(
				key,
				inc_data={'quota': to_units(delta)},
				update_data=quota_snapshot(updated.remain_quota, updated.used_quota),
			)
			if result.success:
				self.log('[令牌管理] 服务端 Key 信息同步成功')
			else:
				self.log(f'[令牌管理] 服务端 Key 信息同步失败: {result.error}')
			actions.append(SyncAction(kind='supplement', key=key, success=result.success, error=result.error))

		return actions

	async def _upload_sales(self, pending: list[PendingSale], tokens: list[RemoteToken]) -> list[SyncAction]:
		if not pending:
			return []

		self.log(f'[令牌管理] 检测到 {len(pending)} 个出售令牌，准备批量上传...')
		records: list[LedgerKeyRecord] = []
		for item in pending:
			matched = next((t for t in tokens if t.name == item.name), None)
			if matched is None or not matched.key:
				self.log(f'[令牌管理] 出售令牌 {item.name} 未找到 key，跳过上传')
				continue
			records.append(LedgerKeyRecord(
				key=matched.key,
				key_type=self.ledger.key_type,
				is_sold=False,
				quota=to_units(item.remain_quota),
				source_name=f'{self.username or ""}&{item.name}',
				account_id=self.account_id,
			))

		if not records or not self.ledger.enabled:
			return []

		result = await self.ledger.add_keys(records)
		if result.success:
			self.log(f'[令牌管理] 批量上传成功，共 {len(records)} 个Key')
		else:
			self.log(f'[令牌管理] 批量上传失败: {result.error}')
		return [SyncAction(kind='upload', key=r.key, success=result.success, error=result.error) for r in records]

	async def _sync_drift(self, desired: list[DesiredTokenConfig], tokens: list[RemoteToken]) -> list[SyncAction]:
		"""出售令牌已使用额度有变化（或已售出）时同步账本"""
		actions: list[SyncAction] = []
		if not self.ledger.enabled:
			return actions

		for config in desired:
			if not config.key or not config.is_sale_token(self.sale_name_prefix):
				continue

			current = next(
				(t for t in tokens if t.key == config.key or (config.id is not None and t.id == config.id)),
				None
			)
			if current is None:
				continue

			old_used = config.used_quota
			new_used = current.used_quota
			is_sold = config.is_sold is True
			if new_used == old_used and not is_sold:
				continue

			prefix = f'[令牌管理] 已售出令牌 {config.name}' if is_sold else f'[令牌管理] 出售令牌 {config.name}'
			if new_used != old_used:
				self.log(f'{prefix} 已使用额度变化: {old_used} -> {new_used}')
			else:
				self.log(f'{prefix} 强制更新额度信息')

			result = await self.ledger.update_key_info(
				config.key,
				update_data=quota_snapshot(current.remain_quota, new_used),
			)
			if result.success:
				self.log(f'{prefix} 服务端信息同步成功')
			else:
				self.log(f'{prefix} 服务端信息同步失败: {result.error} ({mask_key(config.key)})')
			actions.append(SyncAction(kind='drift', key=config.key, success=result.success, error=result.error))

		return actions
