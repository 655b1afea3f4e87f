"""
运行配置（环境变量）
"""
import os
from datetime import timezone, timedelta

# 日志级别
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# 本地时区偏移（分钟），默认印度标准时间 UTC+5:30
LOCAL_TZ_OFFSET_MINUTES = int(os.getenv("LOCAL_TZ_OFFSET_MINUTES", "330"))
LOCAL_TZ = timezone(timedelta(minutes=LOCAL_TZ_OFFSET_MINUTES))

# 管理端/员工端轮询间隔（秒），作为实时事件丢失时的兜底
POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", "2"))

# 回收站保留天数和最大条数
RECYCLE_BIN_RETENTION_DAYS = int(os.getenv("RECYCLE_BIN_RETENTION_DAYS", "7"))
RECYCLE_BIN_MAX_ENTRIES = int(os.getenv("RECYCLE_BIN_MAX_ENTRIES", "100"))

# 网络打印机连接超时（秒）
PRINTER_TIMEOUT_SECONDS = float(os.getenv("PRINTER_TIMEOUT_SECONDS", "5"))
