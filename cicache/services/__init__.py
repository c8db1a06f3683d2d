"""服务层

- ci_service.py: 缓存拉取/推送、报告生成、结果判定的编排入口
"""

from cicache.services.ci_service import CIService

__all__ = ["CIService"]
