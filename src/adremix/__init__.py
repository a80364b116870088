"""AdRemix -- 广告概念提取 / 配方生成的异步任务编排服务"""

__version__ = "0.1.0"
