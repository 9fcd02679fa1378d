"""taskpulse Core -- 纯逻辑层：领域模型、解码、聚合、仪表盘组合

本层不做任何网络 I/O。
"""
