"""
Feature modules discovered by botcore.plugin_loader.
"""
