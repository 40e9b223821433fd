"""Core domain package for tgcrawler.

Core contains traversal, extraction, resolution and counting logic without
any Telethon or storage-specific code, keeping the pipeline testable against
fakes.
"""
