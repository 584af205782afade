"""FeedHub - 多用户 RSS 聚合同步引擎."""

__version__ = "0.1.0"
