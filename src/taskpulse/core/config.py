"""配置常量模块 -- 可通过环境变量覆盖

包含解码默认值、仪表盘哨兵值、项目优先级阈值等可配置常量。
"""

import os

# 客户端摘要中无项目时的套餐哨兵值
NO_PLAN: str = "No Plan"

# 项目名称缺失时的展示值
UNNAMED_PROJECT: str = "Unnamed Project"

# 项目解码默认值（与后端创建接口默认值一致）
DEFAULT_PROJECT_PLAN: str = "Starter Launch"
DEFAULT_PROJECT_STATUS: str = "in_development"

# socials 字符串形式的分隔符
SOCIAL_LINKS_DELIMITER: str = ","

# 项目优先级阈值（open tickets + open tasks）
PRIORITY_HIGH_THRESHOLD: int = int(
    os.environ.get("TASKPULSE_PRIORITY_HIGH_THRESHOLD", "10")
)
PRIORITY_MEDIUM_THRESHOLD: int = int(
    os.environ.get("TASKPULSE_PRIORITY_MEDIUM_THRESHOLD", "5")
)
