"""
papersum — structure-aware summarization of Markdown research papers.

Parses a Markdown document into its heading tree, lets an LLM walk that tree
through a small tool-calling protocol (OpenAI-compatible chat API), and
reassembles the per-section summaries into one Markdown report.
"""

__version__ = "0.1.0"
