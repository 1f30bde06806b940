"""
Tier Pricing Service - 分段（阶梯）token 计费引擎与设置服务
"""

__version__ = "0.1.0"
