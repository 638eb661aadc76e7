"""
Utility modules for the crawler.
"""

from .config import AppConfig, ConfigManager, CrawlOptions, load_config

__all__ = ['AppConfig', 'ConfigManager', 'CrawlOptions', 'load_config']
