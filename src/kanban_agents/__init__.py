"""Work-item orchestration core for pipelines of cooperating LLM agents."""

__version__ = "0.1.0"
