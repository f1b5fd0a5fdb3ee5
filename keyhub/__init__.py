"""
KeyHub gateway - one OpenAI-compatible endpoint in front of many vendor keys.
"""
__version__ = "1.0.0"
