"""
agent-stream: bridge streamed LLM completions into an agent loop.
"""

__version__ = "0.1.0"
