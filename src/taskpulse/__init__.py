"""TaskPulse -- 协作仪表盘客户端核心

- core: 纯逻辑层（领域模型、容错解码、任务聚合、仪表盘组合）
- client: 后端 API 访问、计时器状态机、活动计时器解析、刷新闸门
"""

__version__ = "0.1.0"
