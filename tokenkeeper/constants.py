#!/usr/bin/env python3
"""常量定义"""

# 额度换算因子（API 返回的原始值需要除以此值得到美元）
QUOTA_DIVISOR = 500000

# 创建令牌的默认值
DEFAULT_TOKEN_NAME = 'dw'
DEFAULT_TOKEN_QUOTA = 500000

# 出售令牌名称前缀（可通过 SALE_NAME_PREFIX 环境变量覆盖）
DEFAULT_SALE_NAME_PREFIX = 'sold_'

# 上传到账本服务时的 Key 类型
DEFAULT_LEDGER_KEY_TYPE = 'anyrouter'

# 用户状态：2-封禁
USER_STATUS_BANNED = 2

# 令牌列表分页（一次取完）
TOKEN_PAGE_SIZE = 100

# 浏览器等待时间（毫秒）
PAGE_LOAD_WAIT_MS = 3000
PAGE_GOTO_TIMEOUT_MS = 30000
WARMUP_DELAY_MIN_MS = 2000
WARMUP_DELAY_MAX_MS = 3000

# HTTP 请求超时（秒）
HTTP_TIMEOUT_SECONDS = 30

# 并发处理限制
MAX_CONCURRENT_ACCOUNTS = 3  # 最大并行处理账号数

# 文件路径（运行时数据统一存放在 data/ 目录）
DATA_DIR = 'data'
RESULTS_FILE = f'{DATA_DIR}/checkin_results.json'
LOG_FILE = f'{DATA_DIR}/task_run.log'

# Chrome User-Agent
CHROME_USER_AGENT = (
	'Mozilla/5.0 (Windows NT 10.0; Win64; x64) '
	'AppleWebKit/537.36 (KHTML, like Gecko) '
	'Chrome/138.0.0.0 Safari/537.36'
)

# Playwright 浏览器启动参数（用于 stealth 模式）
BROWSER_ARGS = [
	'--disable-blink-features=AutomationControlled',
	'--disable-dev-shm-usage',
	'--disable-web-security',
	'--disable-features=VizDisplayCompositor',
	'--no-sandbox',
]
